# flashdeck/schemas/user.py
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["admin", "teacher", "student"]

SUBJECTS = (
    "Histoire-Géo",
    "Maths",
    "Français",
    "SVT",
    "Anglais",
    "Physique-Chimie",
    "Technologie",
    "Éducation Physique",
)


class UserBase(BaseModel):
    first_name: str
    last_name: str
    role: Role = "student"
    subject: str | None = None  # only meaningful for teachers


class UserCreate(UserBase):
    password: str  # already hashed


class UserUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    password: str | None = None
    role: Role | None = None
    subject: str | None = None


class User(UserCreate):
    id: str

    model_config = ConfigDict(from_attributes=True)


class UserPublic(UserBase):
    id: str

    model_config = ConfigDict(from_attributes=True)


def normalize_name(name: str) -> str:
    return " ".join(name.split()).lower()


def name_key(first_name: str, last_name: str) -> str:
    """Natural key of a user: normalized "first last"."""
    return f"{normalize_name(first_name)} {normalize_name(last_name)}"


class UserAdminUpdate(BaseModel):
    """What an admin may change on an account from the dashboard."""
    first_name: str | None = Field(None, min_length=1)
    last_name: str | None = Field(None, min_length=1)
    role: Role | None = None
    subject: str | None = None
