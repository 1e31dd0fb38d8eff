# flashdeck/api/v1/endpoints/auth.py
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from flashdeck.api.deps import get_broadcaster, get_settings, get_storage
from flashdeck.core.config import Settings
from flashdeck.core.security import authenticate_user, create_access_token
from flashdeck.realtime import events
from flashdeck.realtime.manager import ConnectionManager
from flashdeck.schemas.account_request import AccountRequestPublic
from flashdeck.schemas.auth import LoginRequest, LoginResponse, SignupRequest, Token
from flashdeck.schemas.user import UserPublic
from flashdeck.services import account_service
from flashdeck.storage.base import Storage

router = APIRouter(prefix="/auth", tags=["auth"])


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Incorrect name or password",
        headers={"WWW-Authenticate": "Bearer"},
    )


# 前端用 JSON body 登录
@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    storage: Storage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
):
    user = authenticate_user(storage, payload.first_name, payload.last_name, payload.password)
    if not user:
        raise _invalid_credentials()

    access_token = create_access_token(data={"sub": user.id}, app_settings=app_settings)
    return LoginResponse(access_token=access_token, user=UserPublic.model_validate(user))


# swagger 的 "Authorize" 按钮用这个
@router.post("/token", response_model=Token)
def login_form(
    form_data: OAuth2PasswordRequestForm = Depends(),
    storage: Storage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
):
    """
    OAuth2 form login. username is the full name, "First Last".
    """
    parts = form_data.username.split(None, 1)
    if len(parts) != 2:
        raise _invalid_credentials()

    user = authenticate_user(storage, parts[0], parts[1], form_data.password)
    if not user:
        raise _invalid_credentials()

    return Token(access_token=create_access_token(data={"sub": user.id}, app_settings=app_settings))


@router.post("/signup", response_model=AccountRequestPublic, status_code=status.HTTP_201_CREATED)
def signup(
    payload: SignupRequest,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
):
    request = account_service.submit_signup(storage, obj_in=payload)
    background_tasks.add_task(
        broadcaster.broadcast, events.ACCOUNT_REQUEST_CREATED, {"id": request.id}
    )
    return request
