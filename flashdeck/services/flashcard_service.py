# flashdeck/services/flashcard_service.py
from typing import List

from flashdeck.schemas.flashcard import (
    Flashcard,
    FlashcardCreate,
    FlashcardCreateRequest,
    FlashcardUpdate,
)
from flashdeck.services.pack_service import reorder_moves
from flashdeck.storage.base import Storage


def create_flashcard(storage: Storage, *, pack_id: str, obj_in: FlashcardCreateRequest) -> Flashcard:
    order = obj_in.order
    if order is None:
        cards = storage.get_flashcards_by_pack_id(pack_id)
        order = max(c.order for c in cards) + 1 if cards else 0
    return storage.create_flashcard(
        FlashcardCreate(
            pack_id=pack_id,
            question=obj_in.question,
            answer=obj_in.answer,
            order=order,
        )
    )


def move_flashcard(storage: Storage, *, card: Flashcard, direction: str) -> List[Flashcard]:
    cards = storage.get_flashcards_by_pack_id(card.pack_id)
    index = next((i for i, c in enumerate(cards) if c.id == card.id), None)
    if index is None:
        return []
    changed = [
        storage.update_flashcard(c.id, FlashcardUpdate(order=order))
        for c, order in reorder_moves(cards, index, direction)
    ]
    return [c for c in changed if c is not None]
