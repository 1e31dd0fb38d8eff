# flashdeck/api/v1/endpoints/messages.py
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from flashdeck.api.deps import get_broadcaster, get_storage
from flashdeck.core.security import get_current_user
from flashdeck.realtime import events
from flashdeck.realtime.manager import ConnectionManager
from flashdeck.schemas.message import (
    Message,
    MessageRead,
    MessageSend,
    UnreadConversation,
    UnreadCount,
)
from flashdeck.schemas.user import User, UserPublic
from flashdeck.services import message_service
from flashdeck.storage.base import Storage

router = APIRouter(prefix="/messages", tags=["messages"])
notifications_router = APIRouter(prefix="/notifications", tags=["messages"])


@router.get("/", response_model=List[Message])
def list_my_messages(
    storage: Storage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    return storage.get_messages_for_user(current_user.id)


@router.get("/recipients", response_model=List[UserPublic])
def list_recipients(
    storage: Storage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    return storage.get_valid_message_recipients(current_user.id, current_user.role)


@router.get("/unread-conversations", response_model=List[UnreadConversation])
def list_unread_conversations(
    storage: Storage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    return storage.get_unread_conversations(current_user.id)


@router.get("/conversation/{other_user_id}", response_model=List[Message])
def get_conversation(
    other_user_id: str,
    storage: Storage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    return storage.get_conversation(current_user.id, other_user_id)


@router.post("/", response_model=Message, status_code=status.HTTP_201_CREATED)
def send_message(
    obj_in: MessageSend,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_user: User = Depends(get_current_user),
):
    try:
        message = message_service.send_message(storage, sender=current_user, obj_in=obj_in)
    except message_service.InvalidRecipientError as e:
        raise HTTPException(status_code=400, detail=str(e))

    # every socket gets this, so no message body in the event
    background_tasks.add_task(
        broadcaster.broadcast,
        events.MESSAGE_RECEIVED,
        {"id": message.id, "from_user_id": message.from_user_id, "to_user_id": message.to_user_id},
    )
    background_tasks.add_task(
        broadcaster.broadcast, events.NOTIFICATIONS_UPDATED, {"user_id": message.to_user_id}
    )
    return message


@router.post("/conversation/{other_user_id}/read")
def mark_conversation_read(
    other_user_id: str,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_user: User = Depends(get_current_user),
):
    marked = storage.mark_conversation_as_read(current_user.id, other_user_id)
    if marked:
        background_tasks.add_task(
            broadcaster.broadcast, events.NOTIFICATIONS_UPDATED, {"user_id": current_user.id}
        )
    return {"marked": marked}


@router.post("/{message_id}/read", response_model=MessageRead)
def mark_message_read(
    message_id: str,
    background_tasks: BackgroundTasks,
    storage: Storage = Depends(get_storage),
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    current_user: User = Depends(get_current_user),
):
    message = storage.get_message(message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    if message.to_user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Only the recipient can mark a message read")

    storage.mark_message_as_read(message_id)
    read = storage.record_message_read(message_id, current_user.id)
    background_tasks.add_task(
        broadcaster.broadcast, events.NOTIFICATIONS_UPDATED, {"user_id": current_user.id}
    )
    return read


@notifications_router.get("/unread-count", response_model=UnreadCount)
def unread_count(
    storage: Storage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    return UnreadCount(count=storage.get_total_unread_count(current_user.id))
