"""Select published publications whose metrics are due for a re-fetch.

Pure filter over the store: no platform calls are made here.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.adapters.types import Platform
from creatorpulse.db.errors import store_operation
from creatorpulse.models.post import Post, PostPublication
from creatorpulse.services.decay import decay_interval, polling_horizon
from creatorpulse.services.metrics import latest_observations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuePublication:
    publication_id: int
    platform: str
    platform_post_id: str
    published_at: datetime
    user_id: int
    post_id: int


def _horizon_clause(now: datetime):
    """Per-platform age cutoff; platforms that poll forever get no cutoff."""
    clauses = []
    for platform in Platform:
        horizon = polling_horizon(platform)
        if horizon is None:
            clauses.append(PostPublication.platform == platform.value)
        else:
            clauses.append(
                and_(
                    PostPublication.platform == platform.value,
                    PostPublication.published_at >= now - horizon,
                )
            )
    return or_(*clauses)


@store_operation
async def _candidate_publications(db: AsyncSession, now: datetime) -> list[DuePublication]:
    result = await db.execute(
        select(
            PostPublication.id,
            PostPublication.platform,
            PostPublication.platform_post_id,
            PostPublication.published_at,
            Post.user_id,
            Post.id,
        )
        .join(Post, PostPublication.post_id == Post.id)
        .where(
            PostPublication.status == "published",
            PostPublication.platform_post_id.is_not(None),
            PostPublication.published_at.is_not(None),
            Post.status == "published",
            Post.deleted_at.is_(None),
            _horizon_clause(now),
        )
        .order_by(PostPublication.published_at.desc())
    )
    return [DuePublication(*row) for row in result.all()]


async def select_due_publications(
    db: AsyncSession, now: datetime | None = None
) -> list[DuePublication]:
    """Publications whose time since last observation has reached their decay interval.

    Never-observed publications are due as long as they are still polled.
    """
    now = now or datetime.now(timezone.utc)
    candidates = await _candidate_publications(db, now)
    if not candidates:
        return []

    last_observed = await latest_observations(db, [c.publication_id for c in candidates])

    due = []
    for candidate in candidates:
        interval = decay_interval(candidate.published_at, candidate.platform, now)
        if interval is None:
            continue
        observed_at = last_observed.get(candidate.publication_id)
        if observed_at is not None and now - observed_at < interval:
            continue
        due.append(candidate)

    logger.info("%d of %d publications due for metrics", len(due), len(candidates))
    return due
