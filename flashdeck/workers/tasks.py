"""
Maintenance tasks.
purge_old_messages_task runs in-process from the scheduler; purge_messages_job
is the same thing packaged for an rq worker, which builds its own storage.
"""

import logging

from flashdeck.core.config import settings
from flashdeck.storage.base import Storage

logger = logging.getLogger(__name__)


def purge_old_messages_task(storage: Storage) -> dict:
    """
    Delete messages past the retention window.

    Returns:
        Dictionary with the outcome, never raises
    """
    try:
        logger.info(f"Starting message purge on '{storage.name}' storage")
        deleted = storage.delete_old_messages()
        logger.info(f"Message purge done: {deleted} deleted")
        return {
            "status": "success",
            "backend": storage.name,
            "deleted": deleted,
            "message": f"Deleted {deleted} old messages",
        }

    except Exception as e:
        logger.error(f"Unexpected error during message purge: {e}", exc_info=True)
        return {
            "status": "error",
            "backend": storage.name,
            "deleted": 0,
            "error": str(e),
            "message": "Message purge failed",
        }


def purge_messages_job() -> dict:
    """Entry point enqueued by enqueue_purge_task()."""
    from flashdeck.storage.selector import select_storage

    storage = select_storage(settings)
    if storage.name == "memory":
        # a worker-local memory store never holds the server's messages
        logger.warning("Purge job ran against in-memory storage, nothing shared to purge")
    try:
        return purge_old_messages_task(storage)
    finally:
        storage.close()
