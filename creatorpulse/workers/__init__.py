import asyncio

from celery import Celery, signals
from celery.schedules import crontab

from creatorpulse.core.config import settings
from creatorpulse.core.logging_config import setup_logging

_loop = None


def worker_loop() -> asyncio.AbstractEventLoop:
    """Return a shared event loop for all Celery worker tasks.

    All async tasks must use the same loop to avoid 'Future attached to
    a different loop' errors caused by the shared asyncpg connection pool
    and the per-connection token refresh locks.
    """
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


@signals.setup_logging.connect
def _configure_logging(**kwargs) -> None:
    setup_logging()


celery_app = Celery(
    "creatorpulse_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    beat_schedule={
        "collect-due-metrics-15m": {
            "task": "collect_due_metrics",
            "schedule": crontab(minute="*/15"),
        },
        "collect-follower-snapshots-daily": {
            "task": "collect_follower_snapshots",
            "schedule": crontab(minute=0, hour=6),
        },
        "publish-scheduled-posts-60s": {
            "task": "publish_scheduled_posts",
            "schedule": 60.0,
        },
        "cleanup-fetch-logs-weekly": {
            "task": "cleanup_fetch_logs",
            "schedule": crontab(minute=0, hour=3, day_of_week="sunday"),
        },
        "refresh-expiring-tokens-30m": {
            "task": "refresh_expiring_tokens",
            "schedule": crontab(minute="*/30"),
        },
        "cleanup-orphan-media-daily": {
            "task": "cleanup_orphan_media",
            "schedule": crontab(minute=0, hour=3),
        },
    },
)

# Import tasks so they are registered with the celery app
import creatorpulse.workers.maintenance  # noqa: F401, E402
import creatorpulse.workers.metrics_polling  # noqa: F401, E402
import creatorpulse.workers.schedule_posting  # noqa: F401, E402
