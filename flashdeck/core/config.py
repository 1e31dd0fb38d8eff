# flashdeck/core/config.py
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Flashdeck"

    # Storage backends, tried in this order: relational -> document store -> memory.
    # An empty value skips that backend.
    DATABASE_URL: str | None = "sqlite:///./flashdeck.db"
    REDIS_URL: str | None = None
    REDIS_KEY_PREFIX: str = "flashdeck"

    # JWT Authentication
    SECRET_KEY: str = "change-me-in-production-use-random-string"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # Account created when the selected store has no users yet
    BOOTSTRAP_ADMIN_FIRST_NAME: str = "Camille"
    BOOTSTRAP_ADMIN_LAST_NAME: str = "Cordier"
    BOOTSTRAP_ADMIN_PASSWORD: str = "change-me-admin"

    # Messaging
    MESSAGE_RETENTION_DAYS: int = 7
    MESSAGE_PURGE_INTERVAL_HOURS: float = 24
    PURGE_WITH_RQ: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = "logs/server.log"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
