# flashdeck/storage/sql.py
"""
Relational backend on SQLAlchemy. Works with any DATABASE_URL SQLAlchemy
understands; SQLite gets foreign keys switched on per connection.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import and_, func, or_, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flashdeck import models
from flashdeck.db.base import Base
from flashdeck.db.session import make_engine, make_session_factory
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
from flashdeck.storage.base import Storage, ensure_aware, new_id, patch_data
from flashdeck.storage.errors import (
    AccountRequestNotFoundError,
    DuplicateUserError,
    MissingReferenceError,
)

logger = logging.getLogger(__name__)


def _user(row: models.User) -> User:
    return User.model_validate(row)


def _pack(row: models.Pack) -> Pack:
    pack = Pack.model_validate(row)
    pack.deleted_at = ensure_aware(pack.deleted_at)
    return pack


def _message(row: models.Message) -> Message:
    message = Message.model_validate(row)
    message.created_at = ensure_aware(message.created_at)
    return message


def _account_request(row: models.AccountRequest) -> AccountRequest:
    request = AccountRequest.model_validate(row)
    request.created_at = ensure_aware(request.created_at)
    return request


def _message_read(row: models.MessageRead) -> MessageRead:
    read = MessageRead.model_validate(row)
    read.read_at = ensure_aware(read.read_at)
    return read


class SqlStorage(Storage):
    name = "sql"

    def __init__(self, database_url: str | None = None, *, engine: Engine | None = None, **kwargs):
        super().__init__(**kwargs)
        if engine is None:
            if not database_url:
                raise ValueError("SqlStorage needs a database_url or an engine")
            engine = make_engine(database_url)
        self.engine = engine
        self.SessionLocal = make_session_factory(engine)

        Base.metadata.create_all(bind=self.engine)
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info(f"Relational storage ready on {self.engine.url.render_as_string()}")

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @contextmanager
    def _unique_name(self, db: Session, first_name: str, last_name: str) -> Iterator[None]:
        # writes inside the block plus the commit; a name_key clash becomes DuplicateUserError
        try:
            yield
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if "name_key" in str(e.orig):
                raise DuplicateUserError(first_name, last_name) from e
            raise

    @contextmanager
    def _references(self, db: Session, entity: str, **refs) -> Iterator[None]:
        # same shape as _unique_name, for foreign keys pointing at a missing row
        try:
            yield
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if "foreign key" in str(e.orig).lower():
                missing = {field: ref_id for field, ref_id in refs.items() if ref_id is not None}
                raise MissingReferenceError(entity, missing) from e
            raise

    # ---- users -------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[User]:
        with self._session() as db:
            row = db.query(models.User).filter(models.User.id == user_id).first()
            return _user(row) if row else None

    def get_user_by_name(self, first_name: str, last_name: str) -> Optional[User]:
        key = name_key(first_name, last_name)
        with self._session() as db:
            row = db.query(models.User).filter(models.User.name_key == key).first()
            return _user(row) if row else None

    def get_all_users(self) -> List[User]:
        with self._session() as db:
            rows = (
                db.query(models.User)
                .order_by(models.User.last_name, models.User.first_name, models.User.id)
                .all()
            )
            return [_user(r) for r in rows]

    def get_users_by_role(self, role: str) -> List[User]:
        with self._session() as db:
            rows = (
                db.query(models.User)
                .filter(models.User.role == role)
                .order_by(models.User.last_name, models.User.first_name, models.User.id)
                .all()
            )
            return [_user(r) for r in rows]

    def count_users(self) -> int:
        with self._session() as db:
            return db.query(func.count(models.User.id)).scalar() or 0

    def create_user(self, obj_in: UserCreate) -> User:
        with self._session() as db:
            with self._unique_name(db, obj_in.first_name, obj_in.last_name):
                row = self._add_user(db, obj_in)
            return _user(row)

    def _add_user(self, db: Session, obj_in: UserCreate) -> models.User:
        row = models.User(
            id=new_id(),
            name_key=name_key(obj_in.first_name, obj_in.last_name),
            **obj_in.model_dump(),
        )
        db.add(row)
        return row

    def update_user(self, user_id: str, obj_in: UserUpdate) -> Optional[User]:
        update_data = patch_data(obj_in)
        with self._session() as db:
            row = db.query(models.User).filter(models.User.id == user_id).first()
            if row is None:
                return None
            if not update_data:
                return _user(row)
            first_name = update_data.get("first_name", row.first_name)
            last_name = update_data.get("last_name", row.last_name)
            if "first_name" in update_data or "last_name" in update_data:
                update_data["name_key"] = name_key(first_name, last_name)
            with self._unique_name(db, first_name, last_name):
                db.query(models.User).filter(models.User.id == user_id).update(
                    update_data, synchronize_session=False
                )
            db.refresh(row)
            return _user(row)

    def delete_user(self, user_id: str) -> None:
        with self._session() as db:
            # explicit, so engines without ON DELETE support behave the same
            message_ids = db.query(models.Message.id).filter(
                or_(
                    models.Message.from_user_id == user_id,
                    models.Message.to_user_id == user_id,
                )
            )
            db.query(models.MessageRead).filter(
                or_(
                    models.MessageRead.user_id == user_id,
                    models.MessageRead.message_id.in_(message_ids.scalar_subquery()),
                )
            ).delete(synchronize_session=False)
            db.query(models.Message).filter(
                or_(
                    models.Message.from_user_id == user_id,
                    models.Message.to_user_id == user_id,
                )
            ).delete(synchronize_session=False)
            db.query(models.Pack).filter(models.Pack.created_by_user_id == user_id).update(
                {"created_by_user_id": None}, synchronize_session=False
            )
            db.query(models.User).filter(models.User.id == user_id).delete(
                synchronize_session=False
            )
            db.commit()

    # ---- packs -------------------------------------------------------------

    def _active_packs(self, db: Session):
        return (
            db.query(models.Pack)
            .filter(models.Pack.deleted_at.is_(None))
            .order_by(models.Pack.order.asc(), models.Pack.id.asc())
        )

    def _deleted_packs(self, db: Session):
        return (
            db.query(models.Pack)
            .filter(models.Pack.deleted_at.isnot(None))
            .order_by(models.Pack.deleted_at.desc(), models.Pack.id.desc())
        )

    def get_pack(self, pack_id: str) -> Optional[Pack]:
        with self._session() as db:
            row = db.query(models.Pack).filter(models.Pack.id == pack_id).first()
            return _pack(row) if row else None

    def get_all_packs(self) -> List[Pack]:
        with self._session() as db:
            return [_pack(r) for r in self._active_packs(db).all()]

    def get_packs_by_subject(self, subject: str) -> List[Pack]:
        with self._session() as db:
            rows = self._active_packs(db).filter(models.Pack.subject == subject).all()
            return [_pack(r) for r in rows]

    def get_packs_by_teacher(self, teacher_id: str) -> List[Pack]:
        with self._session() as db:
            rows = (
                self._active_packs(db)
                .filter(models.Pack.created_by_user_id == teacher_id)
                .all()
            )
            return [_pack(r) for r in rows]

    def get_deleted_packs(self) -> List[Pack]:
        with self._session() as db:
            return [_pack(r) for r in self._deleted_packs(db).all()]

    def get_deleted_packs_by_subject(self, subject: str) -> List[Pack]:
        with self._session() as db:
            rows = self._deleted_packs(db).filter(models.Pack.subject == subject).all()
            return [_pack(r) for r in rows]

    def create_pack(self, obj_in: PackCreate) -> Pack:
        with self._session() as db:
            row = models.Pack(
                id=new_id(),
                views=0,
                deleted_at=None,
                is_deleted=False,
                **obj_in.model_dump(),
            )
            with self._references(db, "pack", created_by_user_id=row.created_by_user_id):
                db.add(row)
            db.refresh(row)
            return _pack(row)

    def update_pack(self, pack_id: str, obj_in: PackUpdate) -> Optional[Pack]:
        return self._update(models.Pack, pack_id, patch_data(obj_in), _pack)

    def _update(self, model, entity_id: str, update_data: dict, convert):
        # UPDATE ... SET <only the supplied columns> WHERE id = ?
        with self._session() as db:
            if update_data:
                matched = (
                    db.query(model)
                    .filter(model.id == entity_id)
                    .update(update_data, synchronize_session=False)
                )
                db.commit()
                if not matched:
                    return None
            row = db.query(model).filter(model.id == entity_id).first()
            return convert(row) if row else None

    def soft_delete_pack(self, pack_id: str) -> None:
        with self._session() as db:
            db.query(models.Pack).filter(models.Pack.id == pack_id).update(
                {"deleted_at": self.now(), "is_deleted": True}, synchronize_session=False
            )
            db.commit()

    def restore_pack(self, pack_id: str) -> None:
        with self._session() as db:
            db.query(models.Pack).filter(models.Pack.id == pack_id).update(
                {"deleted_at": None, "is_deleted": False}, synchronize_session=False
            )
            db.commit()

    def permanently_delete_pack(self, pack_id: str) -> None:
        with self._session() as db:
            # flashcards first, in the same transaction as the pack
            db.query(models.Flashcard).filter(models.Flashcard.pack_id == pack_id).delete(
                synchronize_session=False
            )
            db.query(models.Pack).filter(models.Pack.id == pack_id).delete(
                synchronize_session=False
            )
            db.commit()

    def increment_pack_views(self, pack_id: str) -> None:
        with self._session() as db:
            db.query(models.Pack).filter(models.Pack.id == pack_id).update(
                {"views": models.Pack.views + 1}, synchronize_session=False
            )
            db.commit()

    # ---- flashcards --------------------------------------------------------

    def get_flashcard(self, flashcard_id: str) -> Optional[Flashcard]:
        with self._session() as db:
            row = (
                db.query(models.Flashcard)
                .filter(models.Flashcard.id == flashcard_id)
                .first()
            )
            return Flashcard.model_validate(row) if row else None

    def get_flashcards_by_pack_id(self, pack_id: str) -> List[Flashcard]:
        with self._session() as db:
            rows = (
                db.query(models.Flashcard)
                .filter(models.Flashcard.pack_id == pack_id)
                .order_by(models.Flashcard.order.asc(), models.Flashcard.id.asc())
                .all()
            )
            return [Flashcard.model_validate(r) for r in rows]

    def create_flashcard(self, obj_in: FlashcardCreate) -> Flashcard:
        with self._session() as db:
            row = models.Flashcard(id=new_id(), **obj_in.model_dump())
            with self._references(db, "flashcard", pack_id=row.pack_id):
                db.add(row)
            db.refresh(row)
            return Flashcard.model_validate(row)

    def update_flashcard(
        self, flashcard_id: str, obj_in: FlashcardUpdate
    ) -> Optional[Flashcard]:
        return self._update(
            models.Flashcard, flashcard_id, patch_data(obj_in), Flashcard.model_validate
        )

    def delete_flashcard(self, flashcard_id: str) -> None:
        with self._session() as db:
            db.query(models.Flashcard).filter(
                models.Flashcard.id == flashcard_id
            ).delete(synchronize_session=False)
            db.commit()

    # ---- account requests --------------------------------------------------

    def get_account_requests(self) -> List[AccountRequest]:
        with self._session() as db:
            rows = (
                db.query(models.AccountRequest)
                .order_by(
                    models.AccountRequest.created_at.asc(), models.AccountRequest.id.asc()
                )
                .all()
            )
            return [_account_request(r) for r in rows]

    def get_account_request(self, request_id: str) -> Optional[AccountRequest]:
        with self._session() as db:
            row = (
                db.query(models.AccountRequest)
                .filter(models.AccountRequest.id == request_id)
                .first()
            )
            return _account_request(row) if row else None

    def create_account_request(self, obj_in: AccountRequestCreate) -> AccountRequest:
        with self._session() as db:
            row = models.AccountRequest(
                id=new_id(), status="pending", created_at=self.now(), **obj_in.model_dump()
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _account_request(row)

    def approve_account_request(
        self,
        request_id: str,
        first_name: str,
        last_name: str,
        hashed_password: str,
        role: str,
        subject: str | None = None,
    ) -> User:
        with self._session() as db:
            deleted = (
                db.query(models.AccountRequest)
                .filter(models.AccountRequest.id == request_id)
                .delete(synchronize_session=False)
            )
            if not deleted:
                db.rollback()
                raise AccountRequestNotFoundError(request_id)
            # user insert and request delete commit together
            with self._unique_name(db, first_name, last_name):
                row = self._add_user(
                    db,
                    UserCreate(
                        first_name=first_name,
                        last_name=last_name,
                        password=hashed_password,
                        role=role,
                        subject=subject,
                    ),
                )
            return _user(row)

    def reject_account_request(self, request_id: str) -> None:
        with self._session() as db:
            db.query(models.AccountRequest).filter(
                models.AccountRequest.id == request_id
            ).delete(synchronize_session=False)
            db.commit()

    # ---- messages ----------------------------------------------------------

    def get_message(self, message_id: str) -> Optional[Message]:
        with self._session() as db:
            row = db.query(models.Message).filter(models.Message.id == message_id).first()
            return _message(row) if row else None

    def get_messages_for_user(self, user_id: str) -> List[Message]:
        with self._session() as db:
            rows = (
                db.query(models.Message)
                .filter(
                    or_(
                        models.Message.from_user_id == user_id,
                        models.Message.to_user_id == user_id,
                    )
                )
                .order_by(models.Message.created_at.asc(), models.Message.id.asc())
                .all()
            )
            return [_message(r) for r in rows]

    def get_conversation(self, user_id: str, other_user_id: str) -> List[Message]:
        with self._session() as db:
            rows = (
                db.query(models.Message)
                .filter(
                    or_(
                        and_(
                            models.Message.from_user_id == user_id,
                            models.Message.to_user_id == other_user_id,
                        ),
                        and_(
                            models.Message.from_user_id == other_user_id,
                            models.Message.to_user_id == user_id,
                        ),
                    )
                )
                .order_by(models.Message.created_at.asc(), models.Message.id.asc())
                .all()
            )
            return [_message(r) for r in rows]

    def create_message(self, obj_in: MessageCreate) -> Message:
        with self._session() as db:
            row = models.Message(
                id=new_id(), created_at=self.now(), read=False, **obj_in.model_dump()
            )
            with self._references(
                db, "message", from_user_id=row.from_user_id, to_user_id=row.to_user_id
            ):
                db.add(row)
            db.refresh(row)
            return _message(row)

    def mark_message_as_read(self, message_id: str) -> None:
        with self._session() as db:
            db.query(models.Message).filter(models.Message.id == message_id).update(
                {"read": True}, synchronize_session=False
            )
            db.commit()

    def get_valid_message_recipients(self, user_id: str, role: str) -> List[User]:
        with self._session() as db:
            query = db.query(models.User).filter(models.User.id != user_id)
            if role != "admin":
                query = query.filter(models.User.role == "admin")
            rows = query.order_by(
                models.User.last_name, models.User.first_name, models.User.id
            ).all()
            return [_user(r) for r in rows]

    def _unread_for(self, db: Session, user_id: str):
        return db.query(models.Message).filter(
            models.Message.to_user_id == user_id,
            models.Message.read.is_(False),
        )

    def get_unread_conversations(self, user_id: str) -> List[UnreadConversation]:
        with self._session() as db:
            rows = (
                db.query(models.Message.from_user_id, func.count(models.Message.id))
                .filter(
                    models.Message.to_user_id == user_id,
                    models.Message.read.is_(False),
                )
                .group_by(models.Message.from_user_id)
                .order_by(models.Message.from_user_id)
                .all()
            )
            return [
                UnreadConversation(conversation_with=other, unread_count=count)
                for other, count in rows
            ]

    def get_total_unread_count(self, user_id: str) -> int:
        with self._session() as db:
            return self._unread_for(db, user_id).count()

    def mark_conversation_as_read(self, user_id: str, other_user_id: str) -> int:
        with self._session() as db:
            flipped = (
                self._unread_for(db, user_id)
                .filter(models.Message.from_user_id == other_user_id)
                .update({"read": True}, synchronize_session=False)
            )
            db.commit()
            return flipped

    def record_message_read(self, message_id: str, user_id: str) -> MessageRead:
        with self._session() as db:
            row = models.MessageRead(
                id=new_id(), message_id=message_id, user_id=user_id, read_at=self.now()
            )
            with self._references(db, "message_read", message_id=message_id, user_id=user_id):
                db.add(row)
            db.refresh(row)
            return _message_read(row)

    def get_message_reads(self, message_id: str) -> List[MessageRead]:
        with self._session() as db:
            rows = (
                db.query(models.MessageRead)
                .filter(models.MessageRead.message_id == message_id)
                .order_by(models.MessageRead.read_at.asc(), models.MessageRead.id.asc())
                .all()
            )
            return [_message_read(r) for r in rows]

    def delete_old_messages(self) -> int:
        cutoff = self.purge_cutoff()
        with self._session() as db:
            expired = db.query(models.Message.id).filter(models.Message.created_at < cutoff)
            db.query(models.MessageRead).filter(
                models.MessageRead.message_id.in_(expired.scalar_subquery())
            ).delete(synchronize_session=False)
            deleted = (
                db.query(models.Message)
                .filter(models.Message.created_at < cutoff)
                .delete(synchronize_session=False)
            )
            db.commit()
        if deleted:
            logger.info(f"Purged {deleted} messages older than {cutoff.isoformat()}")
        return deleted
