"""
Document-store backend on Redis.

Every entity is a hash (``<prefix>:<collection>:<id>``) whose fields hold
JSON-encoded values, so a partial update only rewrites the supplied fields.
Listings never filter on a nullable field: they read sorted-set indexes
instead (``packs:active`` scored by ``order``, ``packs:deleted`` scored by the
deletion time), and the document carries the redundant ``is_deleted`` flag.

Writes touching several documents are queued in one MULTI/EXEC batch. Reads
that decide what to write run under WATCH and are retried when a watched key
changes underneath them. If EXEC reports errors for some commands the
backend raises BatchWriteError with the number that did apply.
"""

import json
import logging
from collections import Counter
from typing import Callable, Iterable, List, Optional, Tuple

from redis import Redis
from redis.exceptions import WatchError

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
    BatchWriteError,
    DuplicateUserError,
    MissingReferenceError,
)

logger = logging.getLogger(__name__)

# prepare(pipe) -> (result, queue_writes or None)
Prepare = Callable[[object], Tuple[object, Optional[Callable[[object], None]]]]


def encode(model, fields: Iterable[str] | None = None) -> dict:
    data = model.model_dump(mode="json")
    if fields is not None:
        data = {k: data[k] for k in fields}
    return {k: json.dumps(v) for k, v in data.items()}


def decode(raw: dict) -> dict:
    return {k: json.loads(v) for k, v in raw.items()}


class RedisDocumentStorage(Storage):
    name = "redis"

    def __init__(
        self,
        url: str | None = None,
        *,
        client: Redis | None = None,
        prefix: str = "flashdeck",
        **kwargs,
    ):
        super().__init__(**kwargs)
        if client is None:
            if not url:
                raise ValueError("RedisDocumentStorage needs a url or a client")
            client = Redis.from_url(url, decode_responses=True)
        self.redis = client
        self.prefix = prefix
        self.redis.ping()
        logger.info(f"Document storage ready (key prefix '{prefix}')")

    def close(self) -> None:
        self.redis.close()

    # ---- keys --------------------------------------------------------------

    def _key(self, *parts: str) -> str:
        return ":".join((self.prefix,) + parts)

    def _doc(self, collection: str, doc_id: str) -> str:
        return self._key(collection, doc_id)

    @property
    def _users(self) -> str:
        return self._key("users")

    @property
    def _users_by_name(self) -> str:
        return self._key("users", "by_name")

    def _user_set(self, user_id: str, name: str) -> str:
        # per-user indexes: packs, inbox, outbox, unread, reads
        return self._key("user", user_id, name)

    @property
    def _active_packs(self) -> str:
        return self._key("packs", "active")

    @property
    def _deleted_packs(self) -> str:
        return self._key("packs", "deleted")

    def _pack_cards(self, pack_id: str) -> str:
        return self._key("pack", pack_id, "flashcards")

    @property
    def _requests(self) -> str:
        return self._key("account_requests")

    @property
    def _messages(self) -> str:
        return self._key("messages")

    def _message_reads_set(self, message_id: str) -> str:
        return self._key("message", message_id, "reads")

    # ---- document helpers --------------------------------------------------

    def _load(self, collection: str, doc_id: str, schema, conn=None):
        raw = (conn or self.redis).hgetall(self._doc(collection, doc_id))
        return schema.model_validate(decode(raw)) if raw else None

    def _load_many(self, collection: str, ids: Iterable[str], schema) -> list:
        ids = list(ids)
        if not ids:
            return []
        pipe = self.redis.pipeline(transaction=False)
        for doc_id in ids:
            pipe.hgetall(self._doc(collection, doc_id))
        # documents deleted between the index read and this fetch are skipped
        return [schema.model_validate(decode(raw)) for raw in pipe.execute() if raw]

    def _load_many_watched(self, pipe, collection: str, ids: Iterable[str], schema) -> list:
        docs = []
        for doc_id in ids:
            doc = self._load(collection, doc_id, schema, conn=pipe)
            if doc is not None:
                docs.append(doc)
        return docs

    def _execute_batch(self, pipe, action: str) -> list:
        results = pipe.execute(raise_on_error=False)
        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            succeeded = len(results) - len(errors)
            logger.error(
                f"{action}: {len(errors)} of {len(results)} batched writes failed: {errors[0]}"
            )
            raise BatchWriteError(action, succeeded, len(results), errors)
        return results

    def _batch(self, action: str, queue: Callable[[object], None]) -> None:
        pipe = self.redis.pipeline(transaction=True)
        queue(pipe)
        self._execute_batch(pipe, action)

    def _transaction(self, action: str, watches: List[str], prepare: Prepare):
        with self.redis.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(*watches)
                    result, queue = prepare(pipe)
                    if queue is None:
                        pipe.unwatch()
                        return result
                    pipe.multi()
                    queue(pipe)
                    self._execute_batch(pipe, action)
                    return result
                except WatchError:
                    logger.debug(f"{action}: watched key changed, retrying")
                    continue

    def _insert_referencing(self, action: str, entity: str, refs: dict, queue) -> None:
        """
        Queue an insert whose parents must exist. refs maps field -> (collection, id);
        the parent documents stay watched until EXEC, so a concurrent delete retries.
        """
        keys = {
            field: self._doc(collection, ref_id)
            for field, (collection, ref_id) in refs.items()
            if ref_id is not None
        }
        if not keys:
            self._batch(action, queue)
            return

        def prepare(pipe):
            missing = {field: refs[field][1] for field, key in keys.items() if not pipe.exists(key)}
            if missing:
                raise MissingReferenceError(entity, missing)
            return None, queue

        self._transaction(action, list(keys.values()), prepare)

    # ---- users -------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[User]:
        return self._load("user", user_id, User)

    def get_user_by_name(self, first_name: str, last_name: str) -> Optional[User]:
        user_id = self.redis.hget(self._users_by_name, name_key(first_name, last_name))
        return self.get_user(user_id) if user_id else None

    def get_all_users(self) -> List[User]:
        users = self._load_many("user", self.redis.smembers(self._users), User)
        return sorted(users, key=lambda u: (u.last_name, u.first_name, u.id))

    def get_users_by_role(self, role: str) -> List[User]:
        return [u for u in self.get_all_users() if u.role == role]

    def count_users(self) -> int:
        return self.redis.scard(self._users)

    def _queue_user_insert(self, pipe, user: User) -> None:
        pipe.hset(self._doc("user", user.id), mapping=encode(user))
        pipe.sadd(self._users, user.id)
        pipe.hset(self._users_by_name, name_key(user.first_name, user.last_name), user.id)

    def create_user(self, obj_in: UserCreate) -> User:
        def prepare(pipe):
            if pipe.hexists(self._users_by_name, name_key(obj_in.first_name, obj_in.last_name)):
                raise DuplicateUserError(obj_in.first_name, obj_in.last_name)
            user = User(id=new_id(), **obj_in.model_dump())
            return user, lambda p: self._queue_user_insert(p, user)

        return self._transaction("create_user", [self._users_by_name], prepare)

    def update_user(self, user_id: str, obj_in: UserUpdate) -> Optional[User]:
        update_data = patch_data(obj_in)
        doc_key = self._doc("user", user_id)

        def prepare(pipe):
            existing = self._load("user", user_id, User, conn=pipe)
            if existing is None or not update_data:
                return existing, None
            updated = existing.model_copy(update=update_data)
            old_key = name_key(existing.first_name, existing.last_name)
            new_key = name_key(updated.first_name, updated.last_name)
            if new_key != old_key:
                owner = pipe.hget(self._users_by_name, new_key)
                if owner and owner != user_id:
                    raise DuplicateUserError(updated.first_name, updated.last_name)

            def queue(p):
                p.hset(doc_key, mapping=encode(updated, update_data))
                if new_key != old_key:
                    p.hdel(self._users_by_name, old_key)
                    p.hset(self._users_by_name, new_key, user_id)

            return updated, queue

        return self._transaction("update_user", [doc_key, self._users_by_name], prepare)

    def delete_user(self, user_id: str) -> None:
        doc_key = self._doc("user", user_id)
        inbox = self._user_set(user_id, "inbox")
        outbox = self._user_set(user_id, "outbox")
        packs = self._user_set(user_id, "packs")
        reads = self._user_set(user_id, "reads")

        def prepare(pipe):
            user = self._load("user", user_id, User, conn=pipe)
            if user is None:
                return None, None
            message_ids = pipe.sunion(inbox, outbox)
            messages = self._load_many_watched(pipe, "message", message_ids, Message)
            message_reads = {m.id: pipe.smembers(self._message_reads_set(m.id)) for m in messages}
            # the pack may already be gone; only touch documents that exist
            pack_ids = [pid for pid in pipe.smembers(packs) if pipe.exists(self._doc("pack", pid))]
            own_reads = self._load_many_watched(pipe, "message_read", pipe.smembers(reads), MessageRead)

            def queue(p):
                p.delete(doc_key)
                p.srem(self._users, user_id)
                p.hdel(self._users_by_name, name_key(user.first_name, user.last_name))
                for pack_id in pack_ids:
                    p.hset(self._doc("pack", pack_id), "created_by_user_id", json.dumps(None))
                for message in messages:
                    self._queue_message_delete(p, message, message_reads[message.id])
                for read in own_reads:
                    p.delete(self._doc("message_read", read.id))
                    p.srem(self._message_reads_set(read.message_id), read.id)
                p.delete(inbox, outbox, packs, reads, self._user_set(user_id, "unread"))

            return None, queue

        self._transaction("delete_user", [doc_key, inbox, outbox, packs, reads], prepare)

    # ---- packs -------------------------------------------------------------

    def get_pack(self, pack_id: str) -> Optional[Pack]:
        return self._load("pack", pack_id, Pack)

    def get_all_packs(self) -> List[Pack]:
        packs = self._load_many("pack", self.redis.zrange(self._active_packs, 0, -1), Pack)
        # the index and the documents are read separately; the document flag wins
        return [p for p in packs if not p.is_deleted]

    def get_packs_by_subject(self, subject: str) -> List[Pack]:
        return [p for p in self.get_all_packs() if p.subject == subject]

    def get_packs_by_teacher(self, teacher_id: str) -> List[Pack]:
        return [p for p in self.get_all_packs() if p.created_by_user_id == teacher_id]

    def get_deleted_packs(self) -> List[Pack]:
        packs = self._load_many("pack", self.redis.zrevrange(self._deleted_packs, 0, -1), Pack)
        return [p for p in packs if p.is_deleted]

    def get_deleted_packs_by_subject(self, subject: str) -> List[Pack]:
        return [p for p in self.get_deleted_packs() if p.subject == subject]

    def create_pack(self, obj_in: PackCreate) -> Pack:
        pack = Pack(id=new_id(), views=0, deleted_at=None, is_deleted=False, **obj_in.model_dump())

        def queue(p):
            p.hset(self._doc("pack", pack.id), mapping=encode(pack))
            p.zadd(self._active_packs, {pack.id: pack.order})
            if pack.created_by_user_id:
                p.sadd(self._user_set(pack.created_by_user_id, "packs"), pack.id)

        self._insert_referencing(
            "create_pack", "pack", {"created_by_user_id": ("user", pack.created_by_user_id)}, queue
        )
        return pack

    def update_pack(self, pack_id: str, obj_in: PackUpdate) -> Optional[Pack]:
        update_data = patch_data(obj_in)
        doc_key = self._doc("pack", pack_id)

        def prepare(pipe):
            existing = self._load("pack", pack_id, Pack, conn=pipe)
            if existing is None or not update_data:
                return existing, None
            updated = existing.model_copy(update=update_data)

            def queue(p):
                p.hset(doc_key, mapping=encode(updated, update_data))
                if "order" in update_data and not updated.is_deleted:
                    p.zadd(self._active_packs, {pack_id: updated.order})

            return updated, queue

        return self._transaction("update_pack", [doc_key], prepare)

    def soft_delete_pack(self, pack_id: str) -> None:
        doc_key = self._doc("pack", pack_id)

        def prepare(pipe):
            if not pipe.exists(doc_key):
                return None, None
            deleted_at = self.now()

            def queue(p):
                p.hset(
                    doc_key,
                    mapping={"deleted_at": json.dumps(deleted_at.isoformat()), "is_deleted": json.dumps(True)},
                )
                p.zrem(self._active_packs, pack_id)
                p.zadd(self._deleted_packs, {pack_id: deleted_at.timestamp()})

            return None, queue

        self._transaction("soft_delete_pack", [doc_key], prepare)

    def restore_pack(self, pack_id: str) -> None:
        doc_key = self._doc("pack", pack_id)

        def prepare(pipe):
            pack = self._load("pack", pack_id, Pack, conn=pipe)
            if pack is None:
                return None, None

            def queue(p):
                p.hset(doc_key, mapping={"deleted_at": json.dumps(None), "is_deleted": json.dumps(False)})
                p.zrem(self._deleted_packs, pack_id)
                p.zadd(self._active_packs, {pack_id: pack.order})

            return None, queue

        self._transaction("restore_pack", [doc_key], prepare)

    def permanently_delete_pack(self, pack_id: str) -> None:
        doc_key = self._doc("pack", pack_id)
        cards_key = self._pack_cards(pack_id)

        def prepare(pipe):
            pack = self._load("pack", pack_id, Pack, conn=pipe)
            card_ids = pipe.zrange(cards_key, 0, -1)
            if pack is None and not card_ids:
                return None, None

            def queue(p):
                # flashcards go in the same MULTI as the pack
                for card_id in card_ids:
                    p.delete(self._doc("flashcard", card_id))
                p.delete(cards_key, doc_key)
                p.zrem(self._active_packs, pack_id)
                p.zrem(self._deleted_packs, pack_id)
                if pack is not None and pack.created_by_user_id:
                    p.srem(self._user_set(pack.created_by_user_id, "packs"), pack_id)

            return None, queue

        self._transaction("permanently_delete_pack", [doc_key, cards_key], prepare)

    def increment_pack_views(self, pack_id: str) -> None:
        doc_key = self._doc("pack", pack_id)

        def prepare(pipe):
            if not pipe.exists(doc_key):
                return None, None
            return None, lambda p: p.hincrby(doc_key, "views", 1)

        self._transaction("increment_pack_views", [doc_key], prepare)

    # ---- flashcards --------------------------------------------------------

    def get_flashcard(self, flashcard_id: str) -> Optional[Flashcard]:
        return self._load("flashcard", flashcard_id, Flashcard)

    def get_flashcards_by_pack_id(self, pack_id: str) -> List[Flashcard]:
        return self._load_many(
            "flashcard", self.redis.zrange(self._pack_cards(pack_id), 0, -1), Flashcard
        )

    def create_flashcard(self, obj_in: FlashcardCreate) -> Flashcard:
        card = Flashcard(id=new_id(), **obj_in.model_dump())

        def queue(p):
            p.hset(self._doc("flashcard", card.id), mapping=encode(card))
            p.zadd(self._pack_cards(card.pack_id), {card.id: card.order})

        self._insert_referencing(
            "create_flashcard", "flashcard", {"pack_id": ("pack", card.pack_id)}, queue
        )
        return card

    def update_flashcard(
        self, flashcard_id: str, obj_in: FlashcardUpdate
    ) -> Optional[Flashcard]:
        update_data = patch_data(obj_in)
        doc_key = self._doc("flashcard", flashcard_id)

        def prepare(pipe):
            existing = self._load("flashcard", flashcard_id, Flashcard, conn=pipe)
            if existing is None or not update_data:
                return existing, None
            updated = existing.model_copy(update=update_data)

            def queue(p):
                p.hset(doc_key, mapping=encode(updated, update_data))
                if "order" in update_data:
                    p.zadd(self._pack_cards(updated.pack_id), {flashcard_id: updated.order})

            return updated, queue

        return self._transaction("update_flashcard", [doc_key], prepare)

    def delete_flashcard(self, flashcard_id: str) -> None:
        doc_key = self._doc("flashcard", flashcard_id)

        def prepare(pipe):
            card = self._load("flashcard", flashcard_id, Flashcard, conn=pipe)
            if card is None:
                return None, None

            def queue(p):
                p.delete(doc_key)
                p.zrem(self._pack_cards(card.pack_id), flashcard_id)

            return None, queue

        self._transaction("delete_flashcard", [doc_key], prepare)

    # ---- account requests --------------------------------------------------

    def get_account_requests(self) -> List[AccountRequest]:
        return self._load_many(
            "account_request", self.redis.zrange(self._requests, 0, -1), AccountRequest
        )

    def get_account_request(self, request_id: str) -> Optional[AccountRequest]:
        return self._load("account_request", request_id, AccountRequest)

    def create_account_request(self, obj_in: AccountRequestCreate) -> AccountRequest:
        request = AccountRequest(
            id=new_id(), status="pending", created_at=self.now(), **obj_in.model_dump()
        )

        def queue(p):
            p.hset(self._doc("account_request", request.id), mapping=encode(request))
            p.zadd(self._requests, {request.id: request.created_at.timestamp()})

        self._batch("create_account_request", queue)
        return request

    def approve_account_request(
        self,
        request_id: str,
        first_name: str,
        last_name: str,
        hashed_password: str,
        role: str,
        subject: str | None = None,
    ) -> User:
        request_key = self._doc("account_request", request_id)

        def prepare(pipe):
            if not pipe.exists(request_key):
                raise AccountRequestNotFoundError(request_id)
            if pipe.hexists(self._users_by_name, name_key(first_name, last_name)):
                raise DuplicateUserError(first_name, last_name)
            user = User(
                id=new_id(),
                first_name=first_name,
                last_name=last_name,
                password=hashed_password,
                role=role,
                subject=subject,
            )

            def queue(p):
                self._queue_user_insert(p, user)
                p.delete(request_key)
                p.zrem(self._requests, request_id)

            return user, queue

        return self._transaction(
            "approve_account_request", [request_key, self._users_by_name], prepare
        )

    def reject_account_request(self, request_id: str) -> None:
        def queue(p):
            p.delete(self._doc("account_request", request_id))
            p.zrem(self._requests, request_id)

        self._batch("reject_account_request", queue)

    # ---- messages ----------------------------------------------------------

    def _queue_message_delete(self, p, message: Message, read_ids: Iterable[str]) -> None:
        p.delete(self._doc("message", message.id))
        p.zrem(self._messages, message.id)
        p.srem(self._user_set(message.to_user_id, "inbox"), message.id)
        p.srem(self._user_set(message.to_user_id, "unread"), message.id)
        p.srem(self._user_set(message.from_user_id, "outbox"), message.id)
        for read_id in read_ids:
            p.delete(self._doc("message_read", read_id))
        p.delete(self._message_reads_set(message.id))

    def get_message(self, message_id: str) -> Optional[Message]:
        return self._load("message", message_id, Message)

    def get_messages_for_user(self, user_id: str) -> List[Message]:
        ids = self.redis.sunion(
            self._user_set(user_id, "inbox"), self._user_set(user_id, "outbox")
        )
        messages = self._load_many("message", ids, Message)
        return sorted(messages, key=lambda m: (m.created_at, m.id))

    def get_conversation(self, user_id: str, other_user_id: str) -> List[Message]:
        pair = {user_id, other_user_id}
        return [
            m
            for m in self.get_messages_for_user(user_id)
            if {m.from_user_id, m.to_user_id} == pair
        ]

    def create_message(self, obj_in: MessageCreate) -> Message:
        message = Message(id=new_id(), created_at=self.now(), read=False, **obj_in.model_dump())

        def queue(p):
            p.hset(self._doc("message", message.id), mapping=encode(message))
            p.zadd(self._messages, {message.id: message.created_at.timestamp()})
            p.sadd(self._user_set(message.to_user_id, "inbox"), message.id)
            p.sadd(self._user_set(message.to_user_id, "unread"), message.id)
            p.sadd(self._user_set(message.from_user_id, "outbox"), message.id)

        self._insert_referencing(
            "create_message",
            "message",
            {
                "from_user_id": ("user", message.from_user_id),
                "to_user_id": ("user", message.to_user_id),
            },
            queue,
        )
        return message

    def mark_message_as_read(self, message_id: str) -> None:
        doc_key = self._doc("message", message_id)

        def prepare(pipe):
            message = self._load("message", message_id, Message, conn=pipe)
            if message is None or message.read:
                return None, None

            def queue(p):
                p.hset(doc_key, "read", json.dumps(True))
                p.srem(self._user_set(message.to_user_id, "unread"), message_id)

            return None, queue

        self._transaction("mark_message_as_read", [doc_key], prepare)

    def get_valid_message_recipients(self, user_id: str, role: str) -> List[User]:
        return [u for u in self.get_all_users() if can_message(user_id, role, u)]

    def get_unread_conversations(self, user_id: str) -> List[UnreadConversation]:
        unread = self._load_many(
            "message", self.redis.smembers(self._user_set(user_id, "unread")), Message
        )
        counts = Counter(m.from_user_id for m in unread)
        return [
            UnreadConversation(conversation_with=other, unread_count=n)
            for other, n in sorted(counts.items())
        ]

    def get_total_unread_count(self, user_id: str) -> int:
        return self.redis.scard(self._user_set(user_id, "unread"))

    def mark_conversation_as_read(self, user_id: str, other_user_id: str) -> int:
        unread_key = self._user_set(user_id, "unread")

        def prepare(pipe):
            unread = self._load_many_watched(pipe, "message", pipe.smembers(unread_key), Message)
            targets = [m.id for m in unread if m.from_user_id == other_user_id]
            if not targets:
                return 0, None

            def queue(p):
                for message_id in targets:
                    p.hset(self._doc("message", message_id), "read", json.dumps(True))
                p.srem(unread_key, *targets)

            return len(targets), queue

        return self._transaction("mark_conversation_as_read", [unread_key], prepare)

    def record_message_read(self, message_id: str, user_id: str) -> MessageRead:
        read = MessageRead(id=new_id(), message_id=message_id, user_id=user_id, read_at=self.now())

        def queue(p):
            p.hset(self._doc("message_read", read.id), mapping=encode(read))
            p.sadd(self._message_reads_set(message_id), read.id)
            p.sadd(self._user_set(user_id, "reads"), read.id)

        self._insert_referencing(
            "record_message_read",
            "message_read",
            {"message_id": ("message", message_id), "user_id": ("user", user_id)},
            queue,
        )
        return read

    def get_message_reads(self, message_id: str) -> List[MessageRead]:
        reads = self._load_many(
            "message_read", self.redis.smembers(self._message_reads_set(message_id)), MessageRead
        )
        return sorted(reads, key=lambda r: (r.read_at, r.id))

    def delete_old_messages(self) -> int:
        cutoff = self.purge_cutoff()
        # "(" makes the upper bound exclusive: strictly older than the cutoff
        expired_ids = self.redis.zrangebyscore(self._messages, "-inf", f"({cutoff.timestamp()}")
        if not expired_ids:
            return 0
        expired = self._load_many("message", expired_ids, Message)
        reads = {m.id: self.redis.smembers(self._message_reads_set(m.id)) for m in expired}

        def queue(p):
            for message in expired:
                self._queue_message_delete(p, message, reads[message.id])
            # index entries whose document has already vanished
            p.zrem(self._messages, *expired_ids)

        self._batch("delete_old_messages", queue)
        logger.info(f"Purged {len(expired)} messages older than {cutoff.isoformat()}")
        return len(expired)
