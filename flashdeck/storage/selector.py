# flashdeck/storage/selector.py
import logging
from typing import Callable, List, Optional, Tuple

from flashdeck.core.config import Settings
from flashdeck.core.security import get_password_hash
from flashdeck.schemas.user import User, UserCreate
from flashdeck.storage.base import Clock, Storage
from flashdeck.storage.document import RedisDocumentStorage
from flashdeck.storage.errors import BackendUnavailableError, DuplicateUserError
from flashdeck.storage.memory import MemoryStorage
from flashdeck.storage.sql import SqlStorage

logger = logging.getLogger(__name__)


def _candidates(settings: Settings, **kwargs) -> List[Tuple[str, Optional[Callable[[], Storage]]]]:
    # (name, factory); a None factory means the backend is not configured
    sql = None
    if settings.DATABASE_URL:
        sql = lambda: SqlStorage(settings.DATABASE_URL, **kwargs)  # noqa: E731
    redis = None
    if settings.REDIS_URL:
        redis = lambda: RedisDocumentStorage(  # noqa: E731
            settings.REDIS_URL, prefix=settings.REDIS_KEY_PREFIX, **kwargs
        )
    return [
        ("relational", sql),
        ("document", redis),
        ("memory", lambda: MemoryStorage(**kwargs)),
    ]


def _try_backend(name: str, factory: Callable[[], Storage]) -> Storage:
    try:
        return factory()
    except Exception as e:
        raise BackendUnavailableError(name, str(e)) from e


def select_storage(settings: Settings, clock: Clock | None = None) -> Storage:
    """
    Relational -> document store -> memory. The first backend that comes up
    is used for the rest of the process, it is never re-probed.
    """
    kwargs = {"clock": clock, "retention_days": settings.MESSAGE_RETENTION_DAYS}
    for name, factory in _candidates(settings, **kwargs):
        if factory is None:
            logger.info(f"Storage backend '{name}' not configured, skipping")
            continue
        try:
            storage = _try_backend(name, factory)
        except BackendUnavailableError as e:
            logger.warning(f"{e}; falling back to the next backend")
            continue
        logger.info(f"Using '{name}' storage backend")
        return storage

    # memory never fails to construct, so this is only reached on a broken install
    raise BackendUnavailableError("memory", "no storage backend could be initialized")


def ensure_bootstrap_admin(storage: Storage, settings: Settings) -> Optional[User]:
    """Seed one admin when the store has no users at all."""
    if storage.count_users() > 0:
        return None

    first_name = settings.BOOTSTRAP_ADMIN_FIRST_NAME
    last_name = settings.BOOTSTRAP_ADMIN_LAST_NAME
    try:
        admin = storage.create_user(
            UserCreate(
                first_name=first_name,
                last_name=last_name,
                password=get_password_hash(settings.BOOTSTRAP_ADMIN_PASSWORD),
                role="admin",
            )
        )
    except DuplicateUserError:
        # another process seeded it between the count and the insert
        logger.info(f"Bootstrap admin {first_name} {last_name} already exists")
        return None

    logger.warning(
        f"Store was empty: created bootstrap admin {first_name} {last_name}. "
        "Change its password."
    )
    return admin
