# flashdeck/api/v1/endpoints/flashcards.py
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from flashdeck.api.deps import get_broadcaster, get_storage
from flashdeck.api.v1.endpoints.packs import get_managed_pack, get_viewable_pack
from flashdeck.core.security import get_current_staff, get_optional_user
from flashdeck.realtime import events
from flashdeck.realtime.manager import ConnectionManager
from flashdeck.schemas.flashcard import Flashcard, FlashcardCreateRequest, FlashcardUpdate
from flashdeck.schemas.pack import MoveRequest
from flashdeck.schemas.user import User
from flashdeck.services import flashcard_service
from flashdeck.storage.base import Storage

router = APIRouter(prefix="/packs/{pack_id}/flashcards", tags=["flashcards"])


def _get_card(storage: Storage, pack_id: str, flashcard_id: str) -> Flashcard:
    card = storage.get_flashcard(flashcard_id)
    if not card or card.pack_id != pack_id:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return card


@router.get("/", response_model=List[Flashcard])
def list_flashcards(
    pack_id: str,
    storage: Storage = Depends(get_storage),
    current_user: Optional[User] = Depends(get_optional_user),
):
    get_viewable_pack(storage, pack_id, current_user)
    return storage.get_flashcards_by_pack_id(pack_id)


@router.post("/", response_model=Flashcard, status_code=status.HTTP_201_CREATED)
def create_flashcard(
    pack_id: str,
    obj_in: FlashcardCreateRequest,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_staff: User = Depends(get_current_staff),
):
    get_managed_pack(storage, pack_id, current_staff)
    card = flashcard_service.create_flashcard(storage, pack_id=pack_id, obj_in=obj_in)
    background_tasks.add_task(broadcaster.broadcast, events.FLASHCARD_CREATED, card)
    return card


@router.patch("/{flashcard_id}", response_model=Flashcard)
def update_flashcard(
    pack_id: str,
    flashcard_id: str,
    obj_in: FlashcardUpdate,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_staff: User = Depends(get_current_staff),
):
    get_managed_pack(storage, pack_id, current_staff)
    _get_card(storage, pack_id, flashcard_id)

    card = storage.update_flashcard(flashcard_id, obj_in)
    if not card:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    background_tasks.add_task(broadcaster.broadcast, events.FLASHCARD_UPDATED, card)
    return card


@router.delete("/{flashcard_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_flashcard(
    pack_id: str,
    flashcard_id: str,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_staff: User = Depends(get_current_staff),
):
    get_managed_pack(storage, pack_id, current_staff)
    _get_card(storage, pack_id, flashcard_id)

    storage.delete_flashcard(flashcard_id)
    background_tasks.add_task(
        broadcaster.broadcast, events.FLASHCARD_DELETED, {"id": flashcard_id, "pack_id": pack_id}
    )
    return None


@router.post("/{flashcard_id}/move", response_model=List[Flashcard])
def move_flashcard(
    pack_id: str,
    flashcard_id: str,
    obj_in: MoveRequest,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_staff: User = Depends(get_current_staff),
):
    get_managed_pack(storage, pack_id, current_staff)
    card = _get_card(storage, pack_id, flashcard_id)

    changed = flashcard_service.move_flashcard(storage, card=card, direction=obj_in.direction)
    for moved in changed:
        background_tasks.add_task(broadcaster.broadcast, events.FLASHCARD_UPDATED, moved)
    return changed
