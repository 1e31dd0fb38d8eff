# flashdeck/core/logging_config.py
import logging.config
from pathlib import Path

from flashdeck.core.config import settings

LOG_FORMAT = "%(asctime)s [%(name)s] [%(levelname)s] %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """
    Console logging plus a size-rotated file under logs/.
    Pass log_file="" to keep everything on the console.
    """
    level = (level or settings.LOG_LEVEL).upper()
    log_file = settings.LOG_FILE if log_file is None else log_file

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    }
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "default",
            "filename": log_file,
            "maxBytes": MAX_LOG_BYTES,
            "backupCount": 3,
            "encoding": "utf-8",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": LOG_FORMAT}},
            "handlers": handlers,
            "root": {"level": level, "handlers": list(handlers)},
        }
    )
