# flashdeck/api/v1/endpoints/users.py
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from flashdeck.api.deps import get_broadcaster, get_storage
from flashdeck.core.security import get_current_admin, get_current_user
from flashdeck.realtime import events
from flashdeck.realtime.manager import ConnectionManager
from flashdeck.schemas.user import SUBJECTS, User, UserAdminUpdate, UserPublic, UserUpdate
from flashdeck.storage.base import Storage

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserPublic)
def read_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/", response_model=List[UserPublic])
def list_users(
    storage: Storage = Depends(get_storage),
    current_admin: User = Depends(get_current_admin),
):
    return storage.get_all_users()


@router.patch("/{user_id}", response_model=UserPublic)
def update_user(
    user_id: str,
    obj_in: UserAdminUpdate,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_admin: User = Depends(get_current_admin),
):
    if obj_in.subject is not None and obj_in.subject not in SUBJECTS:
        raise HTTPException(status_code=400, detail=f"Unknown subject '{obj_in.subject}'")

    user = storage.update_user(user_id, UserUpdate(**obj_in.model_dump(exclude_unset=True)))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    public = UserPublic.model_validate(user)
    background_tasks.add_task(broadcaster.broadcast, events.USER_UPDATED, public)
    return public


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_admin: User = Depends(get_current_admin),
):
    if user_id == current_admin.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    if not storage.get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")

    storage.delete_user(user_id)
    background_tasks.add_task(broadcaster.broadcast, events.USER_DELETED, {"id": user_id})
    return None
