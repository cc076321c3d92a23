"""Celery task: publish scheduled posts that are due."""

import logging

from creatorpulse.db.session import async_session_factory
from creatorpulse.workers import celery_app, worker_loop

logger = logging.getLogger(__name__)


@celery_app.task(name="publish_scheduled_posts", bind=True, max_retries=3, default_retry_delay=60)
def publish_scheduled_posts(self) -> int:
    """Publish every post whose scheduled_at has passed. Returns how many were attempted."""
    from creatorpulse.services.publishing import publish_due_scheduled_posts

    async def _run() -> int:
        async with async_session_factory() as db:
            try:
                outcomes = await publish_due_scheduled_posts(db)
                for outcome in outcomes:
                    failed = [r.platform for r in outcome.results if not r.success]
                    if failed:
                        logger.warning(
                            "Scheduled post %d: %s, failed on %s",
                            outcome.post_id,
                            outcome.status,
                            ", ".join(failed),
                        )
                return len(outcomes)
            finally:
                await db.close()

    try:
        return worker_loop().run_until_complete(_run())
    except Exception as exc:
        logger.exception("publish_scheduled_posts failed")
        raise self.retry(exc=exc)
