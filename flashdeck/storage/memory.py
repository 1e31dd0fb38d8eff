# flashdeck/storage/memory.py
"""
In-memory backend. Nothing survives a restart; used as the last fallback
and as the reference backend in tests.
"""

import threading
from collections import Counter
from typing import Dict, List, Optional

from flashdeck.schemas.account_request import AccountRequest, AccountRequestCreate
from flashdeck.schemas.flashcard import Flashcard, FlashcardCreate, FlashcardUpdate
from flashdeck.schemas.message import (
    Message,
    MessageCreate,
    MessageRead,
    UnreadConversation,
)
from flashdeck.schemas.pack import Pack, PackCreate, PackUpdate
from flashdeck.schemas.user import User, UserCreate, UserUpdate, name_key
from flashdeck.storage.base import Storage, can_message, new_id, patch_data
from flashdeck.storage.errors import (
    AccountRequestNotFoundError,
    DuplicateUserError,
    MissingReferenceError,
)


def _pack_order(p: Pack):
    return (p.order, p.id)


def _user_order(u: User):
    return (u.last_name, u.first_name, u.id)


def _message_order(m: Message):
    return (m.created_at, m.id)


class MemoryStorage(Storage):
    name = "memory"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # sync endpoints run in a threadpool, so every operation takes the lock
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._packs: Dict[str, Pack] = {}
        self._flashcards: Dict[str, Flashcard] = {}
        self._account_requests: Dict[str, AccountRequest] = {}
        self._messages: Dict[str, Message] = {}
        self._message_reads: Dict[str, MessageRead] = {}

    def _check_refs(self, entity: str, **refs) -> None:
        # refs: field -> (table, id); caller holds the lock
        missing = {
            field: ref_id
            for field, (table, ref_id) in refs.items()
            if ref_id is not None and ref_id not in table
        }
        if missing:
            raise MissingReferenceError(entity, missing)

    # ---- users -------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def get_user_by_name(self, first_name: str, last_name: str) -> Optional[User]:
        key = name_key(first_name, last_name)
        with self._lock:
            for user in self._users.values():
                if name_key(user.first_name, user.last_name) == key:
                    return user.model_copy()
        return None

    def get_all_users(self) -> List[User]:
        with self._lock:
            return [u.model_copy() for u in sorted(self._users.values(), key=_user_order)]

    def get_users_by_role(self, role: str) -> List[User]:
        return [u for u in self.get_all_users() if u.role == role]

    def count_users(self) -> int:
        with self._lock:
            return len(self._users)

    def create_user(self, obj_in: UserCreate) -> User:
        with self._lock:
            if self.get_user_by_name(obj_in.first_name, obj_in.last_name):
                raise DuplicateUserError(obj_in.first_name, obj_in.last_name)
            user = User(id=new_id(), **obj_in.model_dump())
            self._users[user.id] = user
            return user.model_copy()

    def update_user(self, user_id: str, obj_in: UserUpdate) -> Optional[User]:
        update_data = patch_data(obj_in)
        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                return None
            updated = existing.model_copy(update=update_data)
            if name_key(updated.first_name, updated.last_name) != name_key(
                existing.first_name, existing.last_name
            ):
                clash = self.get_user_by_name(updated.first_name, updated.last_name)
                if clash and clash.id != user_id:
                    raise DuplicateUserError(updated.first_name, updated.last_name)
            self._users[user_id] = updated
            return updated.model_copy()

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            if self._users.pop(user_id, None) is None:
                return
            for message in list(self._messages.values()):
                if user_id in (message.from_user_id, message.to_user_id):
                    self._drop_message(message.id)
            for read in list(self._message_reads.values()):
                if read.user_id == user_id:
                    del self._message_reads[read.id]
            for pack in self._packs.values():
                if pack.created_by_user_id == user_id:
                    pack.created_by_user_id = None

    # ---- packs -------------------------------------------------------------

    def _active_packs(self) -> List[Pack]:
        return sorted(
            (p for p in self._packs.values() if p.deleted_at is None), key=_pack_order
        )

    def _deleted_packs(self) -> List[Pack]:
        return sorted(
            (p for p in self._packs.values() if p.deleted_at is not None),
            key=lambda p: (p.deleted_at, p.id),
            reverse=True,
        )

    def get_pack(self, pack_id: str) -> Optional[Pack]:
        with self._lock:
            pack = self._packs.get(pack_id)
            return pack.model_copy() if pack else None

    def get_all_packs(self) -> List[Pack]:
        with self._lock:
            return [p.model_copy() for p in self._active_packs()]

    def get_packs_by_subject(self, subject: str) -> List[Pack]:
        with self._lock:
            return [p.model_copy() for p in self._active_packs() if p.subject == subject]

    def get_packs_by_teacher(self, teacher_id: str) -> List[Pack]:
        with self._lock:
            return [
                p.model_copy()
                for p in self._active_packs()
                if p.created_by_user_id == teacher_id
            ]

    def get_deleted_packs(self) -> List[Pack]:
        with self._lock:
            return [p.model_copy() for p in self._deleted_packs()]

    def get_deleted_packs_by_subject(self, subject: str) -> List[Pack]:
        with self._lock:
            return [p.model_copy() for p in self._deleted_packs() if p.subject == subject]

    def create_pack(self, obj_in: PackCreate) -> Pack:
        pack = Pack(id=new_id(), views=0, deleted_at=None, **obj_in.model_dump())
        with self._lock:
            self._check_refs("pack", created_by_user_id=(self._users, pack.created_by_user_id))
            self._packs[pack.id] = pack
            return pack.model_copy()

    def update_pack(self, pack_id: str, obj_in: PackUpdate) -> Optional[Pack]:
        update_data = patch_data(obj_in)
        with self._lock:
            existing = self._packs.get(pack_id)
            if existing is None:
                return None
            updated = existing.model_copy(update=update_data)
            self._packs[pack_id] = updated
            return updated.model_copy()

    def soft_delete_pack(self, pack_id: str) -> None:
        with self._lock:
            pack = self._packs.get(pack_id)
            if pack is not None:
                pack.deleted_at = self.now()
                pack.is_deleted = True

    def restore_pack(self, pack_id: str) -> None:
        with self._lock:
            pack = self._packs.get(pack_id)
            if pack is not None:
                pack.deleted_at = None
                pack.is_deleted = False

    def permanently_delete_pack(self, pack_id: str) -> None:
        with self._lock:
            for card in list(self._flashcards.values()):
                if card.pack_id == pack_id:
                    del self._flashcards[card.id]
            self._packs.pop(pack_id, None)

    def increment_pack_views(self, pack_id: str) -> None:
        with self._lock:
            pack = self._packs.get(pack_id)
            if pack is not None:
                pack.views += 1

    # ---- flashcards --------------------------------------------------------

    def get_flashcard(self, flashcard_id: str) -> Optional[Flashcard]:
        with self._lock:
            card = self._flashcards.get(flashcard_id)
            return card.model_copy() if card else None

    def get_flashcards_by_pack_id(self, pack_id: str) -> List[Flashcard]:
        with self._lock:
            cards = [c for c in self._flashcards.values() if c.pack_id == pack_id]
            return [c.model_copy() for c in sorted(cards, key=lambda c: (c.order, c.id))]

    def create_flashcard(self, obj_in: FlashcardCreate) -> Flashcard:
        card = Flashcard(id=new_id(), **obj_in.model_dump())
        with self._lock:
            self._check_refs("flashcard", pack_id=(self._packs, card.pack_id))
            self._flashcards[card.id] = card
            return card.model_copy()

    def update_flashcard(
        self, flashcard_id: str, obj_in: FlashcardUpdate
    ) -> Optional[Flashcard]:
        update_data = patch_data(obj_in)
        with self._lock:
            existing = self._flashcards.get(flashcard_id)
            if existing is None:
                return None
            updated = existing.model_copy(update=update_data)
            self._flashcards[flashcard_id] = updated
            return updated.model_copy()

    def delete_flashcard(self, flashcard_id: str) -> None:
        with self._lock:
            self._flashcards.pop(flashcard_id, None)

    # ---- account requests --------------------------------------------------

    def get_account_requests(self) -> List[AccountRequest]:
        with self._lock:
            return [
                r.model_copy()
                for r in sorted(
                    self._account_requests.values(), key=lambda r: (r.created_at, r.id)
                )
            ]

    def get_account_request(self, request_id: str) -> Optional[AccountRequest]:
        with self._lock:
            request = self._account_requests.get(request_id)
            return request.model_copy() if request else None

    def create_account_request(self, obj_in: AccountRequestCreate) -> AccountRequest:
        request = AccountRequest(
            id=new_id(), status="pending", created_at=self.now(), **obj_in.model_dump()
        )
        with self._lock:
            self._account_requests[request.id] = request
            return request.model_copy()

    def approve_account_request(
        self,
        request_id: str,
        first_name: str,
        last_name: str,
        hashed_password: str,
        role: str,
        subject: str | None = None,
    ) -> User:
        with self._lock:
            if request_id not in self._account_requests:
                raise AccountRequestNotFoundError(request_id)
            user = self.create_user(
                UserCreate(
                    first_name=first_name,
                    last_name=last_name,
                    password=hashed_password,
                    role=role,
                    subject=subject,
                )
            )
            del self._account_requests[request_id]
            return user

    def reject_account_request(self, request_id: str) -> None:
        with self._lock:
            self._account_requests.pop(request_id, None)

    # ---- messages ----------------------------------------------------------

    def _drop_message(self, message_id: str) -> None:
        self._messages.pop(message_id, None)
        for read in list(self._message_reads.values()):
            if read.message_id == message_id:
                del self._message_reads[read.id]

    def get_message(self, message_id: str) -> Optional[Message]:
        with self._lock:
            message = self._messages.get(message_id)
            return message.model_copy() if message else None

    def get_messages_for_user(self, user_id: str) -> List[Message]:
        with self._lock:
            mine = [
                m
                for m in self._messages.values()
                if user_id in (m.from_user_id, m.to_user_id)
            ]
            return [m.model_copy() for m in sorted(mine, key=_message_order)]

    def get_conversation(self, user_id: str, other_user_id: str) -> List[Message]:
        pair = {user_id, other_user_id}
        with self._lock:
            thread = [
                m
                for m in self._messages.values()
                if {m.from_user_id, m.to_user_id} == pair
            ]
            return [m.model_copy() for m in sorted(thread, key=_message_order)]

    def create_message(self, obj_in: MessageCreate) -> Message:
        message = Message(
            id=new_id(), created_at=self.now(), read=False, **obj_in.model_dump()
        )
        with self._lock:
            self._check_refs(
                "message",
                from_user_id=(self._users, message.from_user_id),
                to_user_id=(self._users, message.to_user_id),
            )
            self._messages[message.id] = message
            return message.model_copy()

    def mark_message_as_read(self, message_id: str) -> None:
        with self._lock:
            message = self._messages.get(message_id)
            if message is not None:
                message.read = True

    def get_valid_message_recipients(self, user_id: str, role: str) -> List[User]:
        return [u for u in self.get_all_users() if can_message(user_id, role, u)]

    def get_unread_conversations(self, user_id: str) -> List[UnreadConversation]:
        with self._lock:
            counts = Counter(
                m.from_user_id
                for m in self._messages.values()
                if m.to_user_id == user_id and not m.read
            )
        return [
            UnreadConversation(conversation_with=other, unread_count=n)
            for other, n in sorted(counts.items())
        ]

    def get_total_unread_count(self, user_id: str) -> int:
        with self._lock:
            return sum(
                1
                for m in self._messages.values()
                if m.to_user_id == user_id and not m.read
            )

    def mark_conversation_as_read(self, user_id: str, other_user_id: str) -> int:
        flipped = 0
        with self._lock:
            for message in self._messages.values():
                if (
                    message.to_user_id == user_id
                    and message.from_user_id == other_user_id
                    and not message.read
                ):
                    message.read = True
                    flipped += 1
        return flipped

    def record_message_read(self, message_id: str, user_id: str) -> MessageRead:
        read = MessageRead(
            id=new_id(), message_id=message_id, user_id=user_id, read_at=self.now()
        )
        with self._lock:
            self._check_refs(
                "message_read",
                message_id=(self._messages, message_id),
                user_id=(self._users, user_id),
            )
            self._message_reads[read.id] = read
            return read.model_copy()

    def get_message_reads(self, message_id: str) -> List[MessageRead]:
        with self._lock:
            reads = [r for r in self._message_reads.values() if r.message_id == message_id]
            return [r.model_copy() for r in sorted(reads, key=lambda r: (r.read_at, r.id))]

    def delete_old_messages(self) -> int:
        cutoff = self.purge_cutoff()
        with self._lock:
            expired = [m.id for m in self._messages.values() if m.created_at < cutoff]
            for message_id in expired:
                self._drop_message(message_id)
        return len(expired)
