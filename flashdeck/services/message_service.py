# flashdeck/services/message_service.py
import logging

from flashdeck.schemas.message import Message, MessageCreate, MessageSend
from flashdeck.schemas.user import User
from flashdeck.storage.base import Storage, can_message

logger = logging.getLogger(__name__)


class InvalidRecipientError(Exception):
    pass


def send_message(storage: Storage, *, sender: User, obj_in: MessageSend) -> Message:
    """
    Storage does not check the recipient, so it happens here:
    admins write to anyone, everyone else only to admins.
    """
    recipient = storage.get_user(obj_in.to_user_id)
    if recipient is None or not can_message(sender.id, sender.role, recipient):
        logger.info(f"User {sender.id} may not message {obj_in.to_user_id}")
        raise InvalidRecipientError(f"cannot send a message to user {obj_in.to_user_id}")

    return storage.create_message(
        MessageCreate(
            from_user_id=sender.id,
            to_user_id=recipient.id,
            content=obj_in.content,
        )
    )
