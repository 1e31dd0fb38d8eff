# flashdeck/workers/scheduler.py
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from flashdeck.core.config import Settings
from flashdeck.storage.base import Storage
from flashdeck.workers.queue import enqueue_purge_task
from flashdeck.workers.tasks import purge_old_messages_task

logger = logging.getLogger(__name__)

PURGE_JOB_ID = "purge_old_messages"


def run_purge_once(storage: Storage, settings: Settings) -> dict:
    if settings.PURGE_WITH_RQ:
        job_id = enqueue_purge_task()
        logger.info(f"Enqueued message purge job {job_id}")
        return {"status": "enqueued", "job_id": job_id}
    return purge_old_messages_task(storage)


def build_purge_scheduler(storage: Storage, settings: Settings) -> BackgroundScheduler:
    """
    Interval job: first run right away, then every MESSAGE_PURGE_INTERVAL_HOURS.
    The storage is synchronous, so the job runs on the scheduler's thread pool.
    """
    scheduler = BackgroundScheduler(timezone="UTC")
    if not scheduler.get_job(PURGE_JOB_ID):
        scheduler.add_job(
            id=PURGE_JOB_ID,
            func=run_purge_once,
            args=(storage, settings),
            trigger="interval",
            hours=settings.MESSAGE_PURGE_INTERVAL_HOURS,
            next_run_time=datetime.now(timezone.utc),
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
    return scheduler


def start_purge_scheduler(storage: Storage, settings: Settings) -> BackgroundScheduler:
    scheduler = build_purge_scheduler(storage, settings)
    scheduler.start()
    logger.info(
        f"Message purge scheduled every {settings.MESSAGE_PURGE_INTERVAL_HOURS}h "
        f"({'rq' if settings.PURGE_WITH_RQ else 'in-process'})"
    )
    return scheduler
