# flashdeck/models/pack.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from flashdeck.db.base import Base


class Pack(Base):
    __tablename__ = "packs"

    id = Column(String(32), primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    subject = Column(String(50), nullable=False, index=True)
    published = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, default=0)
    views = Column(Integer, nullable=False, default=0)
    created_by_user_id = Column(
        String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # soft delete: deleted_at is the source of truth, is_deleted mirrors it
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
