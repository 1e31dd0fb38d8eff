# flashdeck/schemas/account_request.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

from flashdeck.schemas.user import Role


class AccountRequestCreate(BaseModel):
    first_name: str
    last_name: str
    password: str  # already hashed
    requested_role: Role = "student"


class AccountRequest(AccountRequestCreate):
    id: str
    status: Literal["pending"] = "pending"
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AccountRequestPublic(BaseModel):
    id: str
    first_name: str
    last_name: str
    requested_role: Role
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
