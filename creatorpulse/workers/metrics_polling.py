"""Celery tasks: metrics and follower polling, fetch-log retention."""

import logging

from creatorpulse.db.session import async_session_factory
from creatorpulse.workers import celery_app, worker_loop

logger = logging.getLogger(__name__)


@celery_app.task(name="collect_due_metrics", bind=True, max_retries=3, default_retry_delay=60)
def collect_due_metrics(self) -> dict:
    """Periodic task: fetch metrics for every publication whose decay interval elapsed."""
    from creatorpulse.services.collection import collect_due_metrics as collect

    async def _run() -> dict:
        async with async_session_factory() as db:
            try:
                summary = await collect(db)
                return {
                    "processed": summary.processed,
                    "failed": summary.failed,
                    "skipped_budget": summary.skipped_budget,
                }
            finally:
                await db.close()

    try:
        return worker_loop().run_until_complete(_run())
    except Exception as exc:
        logger.exception("collect_due_metrics failed")
        raise self.retry(exc=exc)


@celery_app.task(name="collect_follower_snapshots", bind=True, max_retries=3, default_retry_delay=300)
def collect_follower_snapshots(self) -> int:
    """Daily task: upsert today's follower count for every active connection."""
    from creatorpulse.services.collection import collect_follower_snapshots as collect

    async def _run() -> int:
        async with async_session_factory() as db:
            try:
                summary = await collect(db)
                return summary.processed
            finally:
                await db.close()

    try:
        return worker_loop().run_until_complete(_run())
    except Exception as exc:
        logger.exception("collect_follower_snapshots failed")
        raise self.retry(exc=exc)


@celery_app.task(name="cleanup_fetch_logs")
def cleanup_fetch_logs() -> int:
    """Weekly task: drop fetch-log rows past the retention period."""
    from creatorpulse.services.collection import cleanup_fetch_logs as cleanup

    async def _run() -> int:
        async with async_session_factory() as db:
            try:
                return await cleanup(db)
            finally:
                await db.close()

    return worker_loop().run_until_complete(_run())
