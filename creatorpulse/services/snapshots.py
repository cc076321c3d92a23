"""Append-only metric snapshots, fetch audit log, and daily API budgets."""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.db.errors import store_operation
from creatorpulse.models.metric_fetch_log import MetricFetchLog
from creatorpulse.models.metric_snapshot import MetricSnapshot

logger = logging.getLogger(__name__)


@dataclass
class SnapshotData:
    user_id: int
    platform: str
    platform_post_id: str
    post_id: int | None = None
    impressions: int | None = None
    unique_reach: int | None = None
    reactions: int | None = None
    comments: int | None = None
    shares: int | None = None
    quotes: int | None = None
    bookmarks: int | None = None
    video_plays: int | None = None
    video_watch_time_ms: int | None = None
    video_unique_viewers: int | None = None
    fetched_at: datetime | None = None


@store_operation
async def insert_snapshot(db: AsyncSession, data: SnapshotData) -> MetricSnapshot:
    """Append one observation. Existing rows are never touched."""
    values = asdict(data)
    values["fetched_at"] = data.fetched_at or datetime.now(timezone.utc)
    snapshot = MetricSnapshot(**values)
    db.add(snapshot)
    await db.commit()
    await db.refresh(snapshot)
    return snapshot


@store_operation
async def latest_for_post(
    db: AsyncSession, user_id: int, platform_post_id: str, platform: str
) -> MetricSnapshot | None:
    """Most recent snapshot for one platform post, or None if never fetched."""
    result = await db.execute(
        select(MetricSnapshot)
        .where(
            MetricSnapshot.user_id == user_id,
            MetricSnapshot.platform_post_id == platform_post_id,
            MetricSnapshot.platform == platform,
        )
        .order_by(MetricSnapshot.fetched_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


@store_operation
async def series_for_post(
    db: AsyncSession,
    user_id: int,
    platform_post_id: str,
    platform: str,
    limit: int = 100,
    since: datetime | None = None,
) -> list[MetricSnapshot]:
    """Snapshots oldest-first (for charts)."""
    query = select(MetricSnapshot).where(
        MetricSnapshot.user_id == user_id,
        MetricSnapshot.platform_post_id == platform_post_id,
        MetricSnapshot.platform == platform,
    )
    if since is not None:
        query = query.where(MetricSnapshot.fetched_at >= since)

    result = await db.execute(query.order_by(MetricSnapshot.fetched_at.asc()).limit(limit))
    return list(result.scalars().all())


def latest_by_key(rows, key: str, timestamp: str) -> dict:
    """Keep the row with the greatest timestamp per key value.

    Works on any row order, so an older observation inserted late never wins.
    """
    latest: dict = {}
    for row in rows:
        owner = getattr(row, key)
        current = latest.get(owner)
        if current is None or getattr(row, timestamp) > getattr(current, timestamp):
            latest[owner] = row
    return latest


@store_operation
async def latest_batch(
    db: AsyncSession, user_id: int, platform_post_ids: list[str]
) -> dict[str, MetricSnapshot]:
    """Latest snapshot per platform post id, in one query. Ids never fetched are absent."""
    if not platform_post_ids:
        return {}

    result = await db.execute(
        select(MetricSnapshot)
        .where(
            MetricSnapshot.user_id == user_id,
            MetricSnapshot.platform_post_id.in_(set(platform_post_ids)),
        )
        .order_by(MetricSnapshot.fetched_at.desc())
    )
    return latest_by_key(result.scalars().all(), "platform_post_id", "fetched_at")


# ---------------------------------------------------------------------------
# Fetch log
# ---------------------------------------------------------------------------


@store_operation
async def log_fetch(
    db: AsyncSession,
    user_id: int,
    platform: str,
    fetch_type: str,
    status: str,
    api_calls_used: int,
    platform_post_id: str | None = None,
    error_message: str | None = None,
) -> MetricFetchLog:
    entry = MetricFetchLog(
        user_id=user_id,
        platform=platform,
        platform_post_id=platform_post_id,
        fetch_type=fetch_type,
        status=status,
        error_message=error_message,
        api_calls_used=api_calls_used,
        fetched_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.commit()
    return entry


@store_operation
async def api_calls_used_today(
    db: AsyncSession, user_id: int, platform: str, now: datetime | None = None
) -> int:
    """Sum of api_calls_used since 00:00 UTC today."""
    now = now or datetime.now(timezone.utc)
    day_start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

    result = await db.execute(
        select(func.coalesce(func.sum(MetricFetchLog.api_calls_used), 0)).where(
            MetricFetchLog.user_id == user_id,
            MetricFetchLog.platform == platform,
            MetricFetchLog.fetched_at >= day_start,
        )
    )
    return int(result.scalar() or 0)


@store_operation
async def delete_fetch_logs_before(db: AsyncSession, cutoff: datetime) -> int:
    result = await db.execute(delete(MetricFetchLog).where(MetricFetchLog.fetched_at < cutoff))
    await db.commit()
    logger.info("Deleted %d fetch log rows older than %s", result.rowcount, cutoff.isoformat())
    return result.rowcount
