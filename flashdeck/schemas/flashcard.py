# flashdeck/schemas/flashcard.py
from pydantic import BaseModel, ConfigDict, Field


class FlashcardBase(BaseModel):
    question: str
    answer: str
    order: int = 0


class FlashcardCreate(FlashcardBase):
    pack_id: str


class FlashcardUpdate(BaseModel):
    question: str | None = None
    answer: str | None = None
    order: int | None = None


class Flashcard(FlashcardCreate):
    id: str

    model_config = ConfigDict(from_attributes=True)


class FlashcardCreateRequest(BaseModel):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    order: int | None = None
