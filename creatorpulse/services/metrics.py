"""Per-publication metric events with derived engagement fields."""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.db.errors import store_operation
from creatorpulse.models.metric_event import MetricEvent
from creatorpulse.models.post import PostPublication
from creatorpulse.services.snapshots import latest_by_key

logger = logging.getLogger(__name__)


@dataclass
class MetricEventData:
    post_publication_id: int
    user_id: int
    platform: str
    published_at: datetime
    impressions: int | None = None
    likes: int | None = None
    replies: int | None = None
    reposts: int | None = None
    clicks: int | None = None
    profile_visits: int | None = None
    follows_from_post: int | None = None
    observed_at: datetime | None = None
    source: str = "api"


def compute_engagement_rate(
    impressions: int | None,
    likes: int | None,
    replies: int | None,
    reposts: int | None,
) -> float | None:
    """(likes + replies + reposts) / impressions; None without impressions, never 0."""
    if not impressions:
        return None
    return ((likes or 0) + (replies or 0) + (reposts or 0)) / impressions


def hours_since(published_at: datetime, observed_at: datetime) -> int:
    return math.floor((observed_at - published_at).total_seconds() / 3600)


@store_operation
async def insert_metric_event(db: AsyncSession, data: MetricEventData) -> MetricEvent:
    observed_at = data.observed_at or datetime.now(timezone.utc)
    event = MetricEvent(
        post_publication_id=data.post_publication_id,
        user_id=data.user_id,
        platform=data.platform,
        impressions=data.impressions,
        likes=data.likes,
        replies=data.replies,
        reposts=data.reposts,
        clicks=data.clicks,
        profile_visits=data.profile_visits,
        follows_from_post=data.follows_from_post,
        engagement_rate=compute_engagement_rate(
            data.impressions, data.likes, data.replies, data.reposts
        ),
        hours_since_publish=hours_since(data.published_at, observed_at),
        observed_at=observed_at,
        source=data.source,
    )
    db.add(event)
    await db.commit()
    await db.refresh(event)
    return event


@store_operation
async def metrics_for_post(
    db: AsyncSession,
    user_id: int,
    post_id: int,
    limit: int = 50,
    since: datetime | None = None,
) -> list[MetricEvent]:
    """Events for every publication of a post, newest first."""
    query = (
        select(MetricEvent)
        .join(PostPublication, MetricEvent.post_publication_id == PostPublication.id)
        .where(MetricEvent.user_id == user_id, PostPublication.post_id == post_id)
    )
    if since is not None:
        query = query.where(MetricEvent.observed_at >= since)

    result = await db.execute(query.order_by(MetricEvent.observed_at.desc()).limit(limit))
    return list(result.scalars().all())


@store_operation
async def latest_metrics_for_post(
    db: AsyncSession, user_id: int, post_id: int
) -> dict[int, MetricEvent]:
    """Latest event per publication of a post, keyed by publication id."""
    result = await db.execute(
        select(MetricEvent)
        .join(PostPublication, MetricEvent.post_publication_id == PostPublication.id)
        .where(MetricEvent.user_id == user_id, PostPublication.post_id == post_id)
        .order_by(MetricEvent.observed_at.desc())
    )
    return latest_by_key(result.scalars().all(), "post_publication_id", "observed_at")


@store_operation
async def latest_observations(
    db: AsyncSession, publication_ids: list[int]
) -> dict[int, datetime]:
    """max(observed_at) per publication in one grouped query. Never-observed ids are absent."""
    if not publication_ids:
        return {}

    result = await db.execute(
        select(MetricEvent.post_publication_id, func.max(MetricEvent.observed_at))
        .where(MetricEvent.post_publication_id.in_(publication_ids))
        .group_by(MetricEvent.post_publication_id)
    )
    return {publication_id: observed_at for publication_id, observed_at in result.all()}
