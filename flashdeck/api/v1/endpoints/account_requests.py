# flashdeck/api/v1/endpoints/account_requests.py
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from flashdeck.api.deps import get_broadcaster, get_storage
from flashdeck.core.security import get_current_admin
from flashdeck.realtime import events
from flashdeck.realtime.manager import ConnectionManager
from flashdeck.schemas.account_request import AccountRequestPublic
from flashdeck.schemas.auth import ApproveRequest
from flashdeck.schemas.user import SUBJECTS, User, UserPublic
from flashdeck.services import account_service
from flashdeck.storage.base import Storage

router = APIRouter(prefix="/account-requests", tags=["account-requests"])


@router.get("/", response_model=List[AccountRequestPublic])
def list_account_requests(
    storage: Storage = Depends(get_storage),
    current_admin: User = Depends(get_current_admin),
):
    return storage.get_account_requests()


@router.post("/{request_id}/approve", response_model=UserPublic)
def approve_account_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    obj_in: Optional[ApproveRequest] = None,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_admin: User = Depends(get_current_admin),
):
    """
    管理员审批：可以改角色，老师需要指定科目
    """
    obj_in = obj_in or ApproveRequest()
    if obj_in.subject is not None and obj_in.subject not in SUBJECTS:
        raise HTTPException(status_code=400, detail=f"Unknown subject '{obj_in.subject}'")

    # AccountRequestNotFoundError / DuplicateUserError are mapped in main.py
    try:
        user = account_service.approve(storage, request_id=request_id, obj_in=obj_in)
    except account_service.MissingSubjectError as e:
        raise HTTPException(status_code=400, detail=str(e))
    public = UserPublic.model_validate(user)
    background_tasks.add_task(
        broadcaster.broadcast, events.ACCOUNT_APPROVED, {"request_id": request_id, "user": public}
    )
    return public


@router.post("/{request_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
def reject_account_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_admin: User = Depends(get_current_admin),
):
    storage.reject_account_request(request_id)
    background_tasks.add_task(
        broadcaster.broadcast, events.ACCOUNT_REJECTED, {"request_id": request_id}
    )
    return None
