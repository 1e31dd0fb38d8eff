# Package marker
from flashdeck.storage.base import Storage
from flashdeck.storage.errors import (
    AccountRequestNotFoundError,
    BackendUnavailableError,
    BatchWriteError,
    DuplicateUserError,
    MissingReferenceError,
    StorageError,
)

__all__ = [
    "Storage",
    "StorageError",
    "DuplicateUserError",
    "AccountRequestNotFoundError",
    "MissingReferenceError",
    "BatchWriteError",
    "BackendUnavailableError",
]
