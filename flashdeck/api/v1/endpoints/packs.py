# flashdeck/api/v1/endpoints/packs.py
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from flashdeck.api.deps import get_broadcaster, get_storage
from flashdeck.core.security import get_current_staff, get_optional_user
from flashdeck.realtime import events
from flashdeck.realtime.manager import ConnectionManager
from flashdeck.schemas.pack import MoveRequest, Pack, PackCreateRequest, PackUpdate
from flashdeck.schemas.user import SUBJECTS, User
from flashdeck.services import pack_service
from flashdeck.storage.base import Storage

router = APIRouter(prefix="/packs", tags=["packs"])


def get_viewable_pack(storage: Storage, pack_id: str, user: Optional[User]) -> Pack:
    pack = storage.get_pack(pack_id)
    # a deleted pack does not exist for anyone who cannot restore it
    if not pack or (pack.is_deleted and not pack_service.can_manage(user, pack)):
        raise HTTPException(status_code=404, detail="Pack not found")
    if not pack_service.can_view(user, pack):
        raise HTTPException(status_code=403, detail="This pack is not published")
    return pack


def get_managed_pack(storage: Storage, pack_id: str, user: User) -> Pack:
    pack = storage.get_pack(pack_id)
    if not pack:
        raise HTTPException(status_code=404, detail="Pack not found")
    if not pack_service.can_manage(user, pack):
        raise HTTPException(status_code=403, detail="Not allowed to manage this pack")
    return pack


@router.get("/", response_model=List[Pack])
def list_packs(
    storage: Storage = Depends(get_storage),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """
    列出可见的卡组（匿名用户也能看已发布的）
    """
    return pack_service.list_visible_packs(storage, current_user)


@router.get("/deleted", response_model=List[Pack])
def list_deleted_packs(
    storage: Storage = Depends(get_storage),
    current_staff: User = Depends(get_current_staff),
):
    return pack_service.list_deleted_packs(storage, current_staff)


@router.get("/{pack_id}", response_model=Pack)
def get_pack(
    pack_id: str,
    storage: Storage = Depends(get_storage),
    current_user: Optional[User] = Depends(get_optional_user),
):
    return get_viewable_pack(storage, pack_id, current_user)


@router.post("/{pack_id}/view", status_code=status.HTTP_204_NO_CONTENT)
def record_view(
    pack_id: str,
    storage: Storage = Depends(get_storage),
    current_user: Optional[User] = Depends(get_optional_user),
):
    get_viewable_pack(storage, pack_id, current_user)
    storage.increment_pack_views(pack_id)
    return None


@router.post("/", response_model=Pack, status_code=status.HTTP_201_CREATED)
def create_pack(
    obj_in: PackCreateRequest,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_staff: User = Depends(get_current_staff),
):
    if current_staff.role == "teacher":
        if not current_staff.subject:
            raise HTTPException(status_code=403, detail="No subject assigned to this teacher")
    elif obj_in.subject not in SUBJECTS:
        raise HTTPException(status_code=400, detail="A valid subject is required")

    pack = pack_service.create_pack(storage, author=current_staff, obj_in=obj_in)
    background_tasks.add_task(broadcaster.broadcast, events.PACK_CREATED, pack)
    return pack


@router.patch("/{pack_id}", response_model=Pack)
def update_pack(
    pack_id: str,
    obj_in: PackUpdate,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_staff: User = Depends(get_current_staff),
):
    get_managed_pack(storage, pack_id, current_staff)

    pack = storage.update_pack(pack_id, obj_in)
    if not pack:
        # purged in between
        raise HTTPException(status_code=404, detail="Pack not found")
    background_tasks.add_task(broadcaster.broadcast, events.PACK_UPDATED, pack)
    return pack


@router.delete("/{pack_id}", status_code=status.HTTP_204_NO_CONTENT)
def soft_delete_pack(
    pack_id: str,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_staff: User = Depends(get_current_staff),
):
    """
    放进回收站，可以恢复
    """
    get_managed_pack(storage, pack_id, current_staff)
    storage.soft_delete_pack(pack_id)
    background_tasks.add_task(broadcaster.broadcast, events.PACK_DELETED, {"id": pack_id})
    return None


@router.post("/{pack_id}/restore", response_model=Pack)
def restore_pack(
    pack_id: str,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_staff: User = Depends(get_current_staff),
):
    get_managed_pack(storage, pack_id, current_staff)
    storage.restore_pack(pack_id)

    pack = storage.get_pack(pack_id)
    if not pack:
        raise HTTPException(status_code=404, detail="Pack not found")
    background_tasks.add_task(broadcaster.broadcast, events.PACK_RESTORED, pack)
    return pack


@router.delete("/{pack_id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
def permanently_delete_pack(
    pack_id: str,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_staff: User = Depends(get_current_staff),
):
    get_managed_pack(storage, pack_id, current_staff)
    storage.permanently_delete_pack(pack_id)
    background_tasks.add_task(broadcaster.broadcast, events.PACK_PURGED, {"id": pack_id})
    return None


@router.post("/{pack_id}/move", response_model=List[Pack])
def move_pack(
    pack_id: str,
    obj_in: MoveRequest,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_staff: User = Depends(get_current_staff),
):
    pack = get_managed_pack(storage, pack_id, current_staff)
    if pack.is_deleted:
        raise HTTPException(status_code=400, detail="Restore the pack before reordering it")

    changed = pack_service.move_pack(storage, pack=pack, direction=obj_in.direction)
    for moved in changed:
        background_tasks.add_task(broadcaster.broadcast, events.PACK_UPDATED, moved)
    return changed
