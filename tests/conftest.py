"""
Shared fixtures.
The storage fixture runs every test that uses it once per backend:
in-memory, SQLite in-memory and the Redis document store on fakeredis.
"""

from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
from fastapi.testclient import TestClient

from flashdeck.core.config import Settings
from flashdeck.core.security import create_access_token, get_password_hash
from flashdeck.main import create_app
from flashdeck.schemas.user import UserCreate
from flashdeck.storage.document import RedisDocumentStorage
from flashdeck.storage.memory import MemoryStorage
from flashdeck.storage.sql import SqlStorage

TEST_DATABASE_URL = "sqlite:///:memory:"
START = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock the backends read; tests move it by hand."""

    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock()


def make_storage(kind: str, clock=None):
    if kind == "memory":
        return MemoryStorage(clock=clock)
    if kind == "sql":
        return SqlStorage(TEST_DATABASE_URL, clock=clock)
    if kind == "redis":
        client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
        return RedisDocumentStorage(client=client, prefix="test", clock=clock)
    raise ValueError(kind)


@pytest.fixture(params=["memory", "sql", "redis"])
def storage(request, clock):
    s = make_storage(request.param, clock)
    yield s
    s.close()


@pytest.fixture
def make_user(storage):
    def _make(first_name="Ada", last_name="Lovelace", role="student", subject=None, password="x"):
        return storage.create_user(
            UserCreate(
                first_name=first_name,
                last_name=last_name,
                password=password,
                role=role,
                subject=subject,
            )
        )

    return _make


# ---- API -------------------------------------------------------------------


@pytest.fixture
def api_settings():
    return Settings(
        DATABASE_URL="",
        REDIS_URL=None,
        LOG_FILE="",
        SECRET_KEY="test-only-secret",
        BOOTSTRAP_ADMIN_FIRST_NAME="Root",
        BOOTSTRAP_ADMIN_LAST_NAME="Admin",
        BOOTSTRAP_ADMIN_PASSWORD="admin-pass",
    )


@pytest.fixture
def memory_storage(clock):
    return MemoryStorage(clock=clock)


@pytest.fixture
def app(memory_storage, api_settings):
    return create_app(storage=memory_storage, app_settings=api_settings, run_scheduler=False)


@pytest.fixture
def client(app):
    # context manager so startup runs (seeds the admin)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def create_account(client, memory_storage):
    # depends on client so the bootstrap admin is seeded first
    def _create(first_name, last_name, role="student", subject=None, password="secret123"):
        return memory_storage.create_user(
            UserCreate(
                first_name=first_name,
                last_name=last_name,
                password=get_password_hash(password),
                role=role,
                subject=subject,
            )
        )

    return _create


@pytest.fixture
def auth_headers(api_settings):
    def _headers(user) -> dict:
        token = create_access_token(data={"sub": user.id}, app_settings=api_settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin(client, memory_storage):
    # seeded by startup
    return memory_storage.get_user_by_name("Root", "Admin")


@pytest.fixture
def math_teacher(create_account):
    return create_account("Marie", "Curie", role="teacher", subject="Maths")


@pytest.fixture
def student(create_account):
    return create_account("Leo", "Student")
