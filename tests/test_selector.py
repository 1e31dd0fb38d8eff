import logging

import fakeredis
import redis

from flashdeck.core.config import Settings
from flashdeck.core.security import verify_password
from flashdeck.schemas.user import UserCreate
from flashdeck.storage import selector
from flashdeck.storage.memory import MemoryStorage
from flashdeck.storage.selector import ensure_bootstrap_admin, select_storage
from flashdeck.storage.sql import SqlStorage


def _settings(**kwargs):
    defaults = {
        "DATABASE_URL": "",
        "REDIS_URL": None,
        "LOG_FILE": "",
        "BOOTSTRAP_ADMIN_FIRST_NAME": "Root",
        "BOOTSTRAP_ADMIN_LAST_NAME": "Admin",
        "BOOTSTRAP_ADMIN_PASSWORD": "admin-pass",
    }
    defaults.update(kwargs)
    return Settings(**defaults)


class TestSelectStorage:
    def test_relational_first(self):
        storage = select_storage(_settings(DATABASE_URL="sqlite:///:memory:"))
        assert isinstance(storage, SqlStorage)
        storage.close()

    def test_nothing_configured_falls_back_to_memory(self):
        storage = select_storage(_settings())
        assert isinstance(storage, MemoryStorage)

    def test_broken_database_falls_through(self, caplog):
        with caplog.at_level(logging.WARNING):
            storage = select_storage(_settings(DATABASE_URL="no-such-dialect://nowhere"))
        assert isinstance(storage, MemoryStorage)
        assert "relational backend unavailable" in caplog.text

    def test_unreachable_redis_falls_through(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise redis.ConnectionError("connection refused")

        monkeypatch.setattr(selector.RedisDocumentStorage, "__init__", refuse)
        storage = select_storage(_settings(REDIS_URL="redis://localhost:1/0"))
        assert isinstance(storage, MemoryStorage)

    def test_document_store_before_memory(self, monkeypatch):
        server = fakeredis.FakeServer()
        # point Redis.from_url at fakeredis so the real constructor path runs
        monkeypatch.setattr(
            "flashdeck.storage.document.Redis.from_url",
            lambda url, **kw: fakeredis.FakeRedis(server=server, **kw),
        )
        storage = select_storage(_settings(REDIS_URL="redis://example:6379/0"))
        assert storage.name == "redis"

    def test_retention_passed_through(self):
        storage = select_storage(_settings(MESSAGE_RETENTION_DAYS=3))
        assert storage.retention.days == 3


class TestBootstrapAdmin:
    def test_seeds_admin_into_empty_store(self):
        storage = MemoryStorage()
        admin = ensure_bootstrap_admin(storage, _settings())

        assert admin.role == "admin"
        assert storage.count_users() == 1
        stored = storage.get_user_by_name("Root", "Admin")
        assert verify_password("admin-pass", stored.password)

    def test_idempotent(self):
        storage = MemoryStorage()
        ensure_bootstrap_admin(storage, _settings())
        assert ensure_bootstrap_admin(storage, _settings()) is None
        assert storage.count_users() == 1

    def test_skipped_when_any_user_exists(self):
        storage = MemoryStorage()
        storage.create_user(UserCreate(first_name="Some", last_name="One", password="h"))
        assert ensure_bootstrap_admin(storage, _settings()) is None
        assert storage.get_users_by_role("admin") == []

    def test_seeding_race_is_absorbed(self, monkeypatch):
        storage = MemoryStorage()
        storage.create_user(
            UserCreate(first_name="Root", last_name="Admin", password="h", role="admin")
        )
        # another process inserted between our count and our insert
        monkeypatch.setattr(storage, "count_users", lambda: 0)
        assert ensure_bootstrap_admin(storage, _settings()) is None
        assert len(storage.get_all_users()) == 1
