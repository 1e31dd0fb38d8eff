# flashdeck/schemas/auth.py
from pydantic import BaseModel, Field

from flashdeck.schemas.user import Role, UserPublic


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginResponse(Token):
    user: UserPublic


class TokenData(BaseModel):
    user_id: str | None = None


class LoginRequest(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class SignupRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6, max_length=72)
    requested_role: Role = "student"


class ApproveRequest(BaseModel):
    """Admin may override the role asked for at signup."""
    role: Role | None = None
    subject: str | None = None
