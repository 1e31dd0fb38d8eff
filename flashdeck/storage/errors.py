# flashdeck/storage/errors.py


class StorageError(Exception):
    pass


class DuplicateUserError(StorageError):
    def __init__(self, first_name: str, last_name: str):
        super().__init__(f"a user named {first_name} {last_name} already exists")
        self.first_name = first_name
        self.last_name = last_name


class AccountRequestNotFoundError(StorageError):
    def __init__(self, request_id: str):
        super().__init__(f"account request {request_id} not found")
        self.request_id = request_id


class MissingReferenceError(StorageError):
    """A write pointing at a parent row (pack, user, message) that does not exist."""

    def __init__(self, entity: str, references: dict):
        refs = ", ".join(f"{field}={ref_id}" for field, ref_id in references.items())
        super().__init__(f"{entity} refers to a missing row ({refs})")
        self.entity = entity
        self.references = dict(references)


class BatchWriteError(StorageError):
    """A multi-document write where only some of the commands were applied."""

    def __init__(self, action: str, succeeded: int, total: int, errors=None):
        super().__init__(
            f"{action}: only {succeeded} of {total} batched writes succeeded"
        )
        self.action = action
        self.succeeded = succeeded
        self.total = total
        self.errors = list(errors or [])


class BackendUnavailableError(StorageError):
    def __init__(self, backend: str, reason: str):
        super().__init__(f"{backend} backend unavailable: {reason}")
        self.backend = backend
        self.reason = reason
