# flashdeck/schemas/pack.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PackBase(BaseModel):
    title: str
    description: str = ""
    subject: str
    published: bool = False
    order: int = 0


class PackCreate(PackBase):
    created_by_user_id: str | None = None


class PackUpdate(BaseModel):
    """Fields left unset are not touched."""
    title: str | None = None
    description: str | None = None
    published: bool | None = None
    order: int | None = None


class Pack(PackCreate):
    id: str
    views: int = 0
    deleted_at: datetime | None = None
    is_deleted: bool = False

    model_config = ConfigDict(from_attributes=True)


class PackCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    subject: str | None = None  # forced to the teacher's own subject
    published: bool = False
    order: int | None = None  # defaults to the end of the list


class MoveRequest(BaseModel):
    direction: Literal["up", "down"]
