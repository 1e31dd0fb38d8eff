# flashdeck/workers/queue.py

from redis import Redis
from rq import Queue

from flashdeck.core.config import settings

MAINTENANCE_QUEUE_NAME = "maintenance"

_redis_conn: Redis | None = None


def get_redis_connection() -> Redis:
    global _redis_conn
    if _redis_conn is None:
        if not settings.REDIS_URL:
            raise RuntimeError("REDIS_URL is not set, background jobs need Redis")
        _redis_conn = Redis.from_url(settings.REDIS_URL)
    return _redis_conn


def get_queue(name: str = MAINTENANCE_QUEUE_NAME, connection: Redis | None = None) -> Queue:
    return Queue(name, connection=connection or get_redis_connection())


def enqueue_purge_task(connection: Redis | None = None) -> str:
    from flashdeck.workers.tasks import purge_messages_job

    q = get_queue(MAINTENANCE_QUEUE_NAME, connection=connection)
    job = q.enqueue(purge_messages_job)
    return job.id
