# flashdeck/models/message.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text

from flashdeck.db.base import Base


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(32), primary_key=True, index=True)
    from_user_id = Column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    to_user_id = Column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    read = Column(Boolean, nullable=False, default=False)


class MessageRead(Base):
    __tablename__ = "message_reads"

    id = Column(String(32), primary_key=True, index=True)
    message_id = Column(
        String(32), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    read_at = Column(DateTime(timezone=True), nullable=False)
