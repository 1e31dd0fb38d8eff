# flashdeck/core/security.py
"""
Password hashing and bearer-token helpers.

 - get_password_hash / verify_password: passlib bcrypt
 - create_access_token / decode_access_token: python-jose JWT, "sub" is the user id
 - get_current_user and friends: FastAPI dependencies resolving the caller
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from flashdeck.api.deps import get_settings, get_storage
from flashdeck.core.config import Settings, settings
from flashdeck.schemas.auth import TokenData
from flashdeck.schemas.user import User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# auto_error=False so anonymous visitors can still list published packs
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # not a hash passlib recognizes
        return False


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
    app_settings: Optional[Settings] = None,
) -> str:
    app_settings = app_settings or settings
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=app_settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, app_settings.SECRET_KEY, algorithm=app_settings.ALGORITHM)


def decode_access_token(token: str, app_settings: Optional[Settings] = None) -> Optional[TokenData]:
    app_settings = app_settings or settings
    try:
        payload = jwt.decode(token, app_settings.SECRET_KEY, algorithms=[app_settings.ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("sub")
    if user_id is None:
        return None
    return TokenData(user_id=user_id)


def authenticate_user(storage, first_name: str, last_name: str, password: str) -> Optional[User]:
    """Look the user up by normalized name and check the password."""
    user = storage.get_user_by_name(first_name, last_name)
    if not user:
        return None
    if not verify_password(password, user.password):
        return None
    return user


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    storage=Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
) -> Optional[User]:
    if not token:
        return None
    token_data = decode_access_token(token, app_settings)
    if token_data is None:
        raise _credentials_exception()
    user = storage.get_user(token_data.user_id)
    if user is None:
        # deleted since the token was issued
        raise _credentials_exception()
    return user


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise _credentials_exception()
    return user


def get_current_staff(current_user: User = Depends(get_current_user)) -> User:
    """Admins and teachers."""
    if current_user.role not in ("admin", "teacher"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Teacher or admin role required",
        )
    return current_user


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return current_user
