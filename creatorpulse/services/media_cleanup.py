"""Removal of stored media that no live post references any more.

Uploads belong to drafts that may be abandoned or deleted, and publishing
can leave staged copies behind when a worker dies mid-post. Anything old
enough and unreferenced is swept.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.core.config import settings
from creatorpulse.db.errors import store_operation
from creatorpulse.models.post import Post
from creatorpulse.services import media

logger = logging.getLogger(__name__)


@store_operation
async def referenced_media_paths(db: AsyncSession) -> set[str]:
    result = await db.execute(select(Post.media_paths).where(Post.deleted_at.is_(None)))
    return {path for paths in result.scalars().all() for path in paths or []}


async def cleanup_orphan_media(db: AsyncSession, now: datetime | None = None) -> int:
    """Delete storage objects older than the grace period that no live post uses.

    Returns the number of objects deleted. Individual delete failures are
    logged by ``media.cleanup_media`` and left for the next run.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=settings.orphan_media_age_hours)

    referenced = await referenced_media_paths(db)
    orphans = [key for key in await media.list_media_older_than(cutoff) if key not in referenced]
    if not orphans:
        logger.info("Media cleanup: nothing to remove")
        return 0

    deleted = await media.cleanup_media(orphans)
    logger.info("Media cleanup: removed %d/%d orphaned objects", deleted, len(orphans))
    return deleted
