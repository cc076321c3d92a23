"""Celery tasks: proactive token refresh and orphaned media cleanup."""

import logging

from creatorpulse.db.session import async_session_factory
from creatorpulse.workers import celery_app, worker_loop

logger = logging.getLogger(__name__)


@celery_app.task(name="refresh_expiring_tokens", bind=True, max_retries=3, default_retry_delay=120)
def refresh_expiring_tokens(self) -> dict:
    """Periodic task: refresh platform tokens that expire within the next hour."""
    from creatorpulse.services.connections import refresh_expiring_connections

    async def _run() -> dict:
        async with async_session_factory() as db:
            try:
                summary = await refresh_expiring_connections(db)
                return {"refreshed": summary.refreshed, "failed": summary.failed}
            finally:
                await db.close()

    try:
        return worker_loop().run_until_complete(_run())
    except Exception as exc:
        logger.exception("refresh_expiring_tokens failed")
        raise self.retry(exc=exc)


@celery_app.task(name="cleanup_orphan_media")
def cleanup_orphan_media() -> int:
    """Daily task: delete stored media that no live post references."""
    from creatorpulse.services.media_cleanup import cleanup_orphan_media as cleanup

    async def _run() -> int:
        async with async_session_factory() as db:
            try:
                return await cleanup(db)
            finally:
                await db.close()

    return worker_loop().run_until_complete(_run())
