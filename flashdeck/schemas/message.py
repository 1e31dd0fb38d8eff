# flashdeck/schemas/message.py
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MessageCreate(BaseModel):
    from_user_id: str
    to_user_id: str
    content: str


class Message(MessageCreate):
    id: str
    created_at: datetime
    read: bool = False

    model_config = ConfigDict(from_attributes=True)


class MessageRead(BaseModel):
    id: str
    message_id: str
    user_id: str
    read_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnreadConversation(BaseModel):
    conversation_with: str
    unread_count: int


class MessageSend(BaseModel):
    to_user_id: str
    content: str = Field(..., min_length=1, max_length=5000)


class UnreadCount(BaseModel):
    count: int
