"""
Storage contract.

Every backend (relational, document store, in-memory) implements this class
with the same external behaviour:

- single-entity reads return ``None`` when the entity is absent, never raise
- listings are ordered (packs and flashcards by ``order`` then id, deleted
  packs by ``deleted_at`` newest first, messages by ``created_at``)
- ``update_*`` only writes the fields set on the patch model
- deletes are idempotent
- ids are generated by the backend
- inserts pointing at a missing pack, user or message raise
  MissingReferenceError and store nothing
"""

import abc
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from flashdeck.schemas.account_request import AccountRequest, AccountRequestCreate
from flashdeck.schemas.flashcard import Flashcard, FlashcardCreate, FlashcardUpdate
from flashdeck.schemas.message import (
    Message,
    MessageCreate,
    MessageRead,
    UnreadConversation,
)
from flashdeck.schemas.pack import Pack, PackCreate, PackUpdate
from flashdeck.schemas.user import User, UserCreate, UserUpdate

DEFAULT_RETENTION_DAYS = 7

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    # some engines (SQLite) hand back naive datetimes; everything we store is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    return uuid.uuid4().hex


# patch fields that may legitimately be cleared with an explicit null
NULLABLE_PATCH_FIELDS = frozenset({"subject"})


def patch_data(obj_in) -> dict:
    """Fields explicitly set on a patch model; a null on a required field is ignored."""
    return {
        field: value
        for field, value in obj_in.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_PATCH_FIELDS
    }


def can_message(sender_id: str, sender_role: str, recipient: User) -> bool:
    """Admins may write to anyone but themselves, everyone else only to admins."""
    if recipient.id == sender_id:
        return False
    if sender_role == "admin":
        return True
    return recipient.role == "admin"


class Storage(abc.ABC):
    #: short name shown in logs and the health endpoint
    name = "abstract"

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ):
        self.clock = clock or utc_now
        self.retention = timedelta(days=retention_days)

    def now(self) -> datetime:
        return self.clock()

    def purge_cutoff(self) -> datetime:
        """Messages created strictly before this instant are purged."""
        return self.now() - self.retention

    def close(self) -> None:
        """Release connections held by the backend."""

    # ---- users -------------------------------------------------------------

    @abc.abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abc.abstractmethod
    def get_user_by_name(self, first_name: str, last_name: str) -> Optional[User]: ...

    @abc.abstractmethod
    def get_all_users(self) -> List[User]: ...

    @abc.abstractmethod
    def get_users_by_role(self, role: str) -> List[User]: ...

    @abc.abstractmethod
    def count_users(self) -> int: ...

    @abc.abstractmethod
    def create_user(self, obj_in: UserCreate) -> User:
        """Raises DuplicateUserError when the normalized name is taken."""

    @abc.abstractmethod
    def update_user(self, user_id: str, obj_in: UserUpdate) -> Optional[User]: ...

    @abc.abstractmethod
    def delete_user(self, user_id: str) -> None:
        """Also drops the user's messages and detaches the packs they created."""

    # ---- packs -------------------------------------------------------------

    @abc.abstractmethod
    def get_pack(self, pack_id: str) -> Optional[Pack]:
        """Returns soft-deleted packs too, so they can be restored or purged."""

    @abc.abstractmethod
    def get_all_packs(self) -> List[Pack]: ...

    @abc.abstractmethod
    def get_packs_by_subject(self, subject: str) -> List[Pack]: ...

    @abc.abstractmethod
    def get_packs_by_teacher(self, teacher_id: str) -> List[Pack]: ...

    @abc.abstractmethod
    def get_deleted_packs(self) -> List[Pack]: ...

    @abc.abstractmethod
    def get_deleted_packs_by_subject(self, subject: str) -> List[Pack]: ...

    @abc.abstractmethod
    def create_pack(self, obj_in: PackCreate) -> Pack: ...

    @abc.abstractmethod
    def update_pack(self, pack_id: str, obj_in: PackUpdate) -> Optional[Pack]: ...

    @abc.abstractmethod
    def soft_delete_pack(self, pack_id: str) -> None: ...

    @abc.abstractmethod
    def restore_pack(self, pack_id: str) -> None: ...

    @abc.abstractmethod
    def permanently_delete_pack(self, pack_id: str) -> None:
        """Removes the pack and every flashcard in it."""

    @abc.abstractmethod
    def increment_pack_views(self, pack_id: str) -> None: ...

    # ---- flashcards --------------------------------------------------------

    @abc.abstractmethod
    def get_flashcard(self, flashcard_id: str) -> Optional[Flashcard]: ...

    @abc.abstractmethod
    def get_flashcards_by_pack_id(self, pack_id: str) -> List[Flashcard]: ...

    @abc.abstractmethod
    def create_flashcard(self, obj_in: FlashcardCreate) -> Flashcard: ...

    @abc.abstractmethod
    def update_flashcard(
        self, flashcard_id: str, obj_in: FlashcardUpdate
    ) -> Optional[Flashcard]: ...

    @abc.abstractmethod
    def delete_flashcard(self, flashcard_id: str) -> None: ...

    # ---- account requests --------------------------------------------------

    @abc.abstractmethod
    def get_account_requests(self) -> List[AccountRequest]: ...

    @abc.abstractmethod
    def get_account_request(self, request_id: str) -> Optional[AccountRequest]: ...

    @abc.abstractmethod
    def create_account_request(self, obj_in: AccountRequestCreate) -> AccountRequest: ...

    @abc.abstractmethod
    def approve_account_request(
        self,
        request_id: str,
        first_name: str,
        last_name: str,
        hashed_password: str,
        role: str,
        subject: str | None = None,
    ) -> User:
        """
        Creates the user and consumes the request in one step.
        Raises AccountRequestNotFoundError when the request is gone.
        """

    @abc.abstractmethod
    def reject_account_request(self, request_id: str) -> None: ...

    # ---- messages ----------------------------------------------------------

    @abc.abstractmethod
    def get_message(self, message_id: str) -> Optional[Message]: ...

    @abc.abstractmethod
    def get_messages_for_user(self, user_id: str) -> List[Message]: ...

    @abc.abstractmethod
    def get_conversation(self, user_id: str, other_user_id: str) -> List[Message]: ...

    @abc.abstractmethod
    def create_message(self, obj_in: MessageCreate) -> Message:
        """The caller has already checked the recipient against the policy."""

    @abc.abstractmethod
    def mark_message_as_read(self, message_id: str) -> None: ...

    @abc.abstractmethod
    def get_valid_message_recipients(self, user_id: str, role: str) -> List[User]: ...

    @abc.abstractmethod
    def get_unread_conversations(self, user_id: str) -> List[UnreadConversation]: ...

    @abc.abstractmethod
    def get_total_unread_count(self, user_id: str) -> int: ...

    @abc.abstractmethod
    def mark_conversation_as_read(self, user_id: str, other_user_id: str) -> int:
        """Flips every unread message other_user_id sent to user_id. Returns how many."""

    @abc.abstractmethod
    def record_message_read(self, message_id: str, user_id: str) -> MessageRead: ...

    @abc.abstractmethod
    def get_message_reads(self, message_id: str) -> List[MessageRead]: ...

    @abc.abstractmethod
    def delete_old_messages(self) -> int:
        """Deletes messages older than the retention window, returns the count."""
