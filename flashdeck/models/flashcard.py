# flashdeck/models/flashcard.py
from sqlalchemy import Column, ForeignKey, Integer, String, Text

from flashdeck.db.base import Base


class Flashcard(Base):
    __tablename__ = "flashcards"

    id = Column(String(32), primary_key=True, index=True)
    pack_id = Column(
        String(32), ForeignKey("packs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    order = Column(Integer, nullable=False, default=0)
