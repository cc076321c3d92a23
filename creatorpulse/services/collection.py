"""Fetch-and-store cycles driven by the periodic workers."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.adapters import RawMetrics, get_adapter
from creatorpulse.core.config import settings
from creatorpulse.core.exceptions import AdapterError, StoreError
from creatorpulse.services.connections import (
    get_valid_access_token,
    list_active_connections,
    require_connection,
)
from creatorpulse.services.due_publications import DuePublication, select_due_publications
from creatorpulse.services.followers import latest_follower_count, upsert_snapshot
from creatorpulse.services.metrics import MetricEventData, insert_metric_event
from creatorpulse.services.posts import get_post
from creatorpulse.services.snapshots import (
    SnapshotData,
    api_calls_used_today,
    delete_fetch_logs_before,
    insert_snapshot,
    log_fetch,
)

logger = logging.getLogger(__name__)


@dataclass
class CollectionSummary:
    processed: int = 0
    failed: int = 0
    skipped_budget: int = 0


def snapshot_from_raw(due: DuePublication, raw: RawMetrics, fetched_at: datetime) -> SnapshotData:
    return SnapshotData(
        user_id=due.user_id,
        platform=due.platform,
        platform_post_id=due.platform_post_id,
        post_id=due.post_id,
        impressions=raw.impressions,
        unique_reach=raw.unique_reach,
        reactions=raw.likes,
        comments=raw.replies,
        shares=raw.reposts,
        quotes=raw.quotes,
        bookmarks=raw.bookmarks,
        video_plays=raw.video_plays,
        video_watch_time_ms=raw.video_watch_time_ms,
        video_unique_viewers=raw.video_unique_viewers,
        fetched_at=fetched_at,
    )


def event_from_raw(due: DuePublication, raw: RawMetrics, observed_at: datetime) -> MetricEventData:
    return MetricEventData(
        post_publication_id=due.publication_id,
        user_id=due.user_id,
        platform=due.platform,
        published_at=due.published_at,
        impressions=raw.impressions,
        likes=raw.likes,
        replies=raw.replies,
        reposts=raw.reposts,
        clicks=raw.clicks,
        profile_visits=raw.profile_visits,
        follows_from_post=raw.follows_from_post,
        observed_at=observed_at,
    )


class _FetchCycle:
    """Fetch-and-store for a run of publications, sharing one API-call tally."""

    def __init__(self, db: AsyncSession, now: datetime) -> None:
        self.db = db
        self.now = now
        self.summary = CollectionSummary()
        self.usage: dict[tuple[int, str], int] = {}

    async def run(self, due: DuePublication) -> None:
        db, now = self.db, self.now
        key = (due.user_id, due.platform)
        if key not in self.usage:
            self.usage[key] = await api_calls_used_today(db, due.user_id, due.platform, now)
        budget = settings.daily_api_budget.get(due.platform, 0)
        if self.usage[key] >= budget:
            self.summary.skipped_budget += 1
            return

        try:
            connection = await require_connection(db, due.user_id, due.platform)
            access_token = await get_valid_access_token(db, connection, now)
            raw = await get_adapter(due.platform).fetch_metrics(access_token, due.platform_post_id)
        except StoreError:
            raise
        except Exception as exc:
            calls = 1 if isinstance(exc, AdapterError) else 0
            self.usage[key] += calls
            self.summary.failed += 1
            logger.warning(
                "Metrics fetch failed for publication %d on %s: %s",
                due.publication_id,
                due.platform,
                exc,
            )
            await log_fetch(
                db,
                user_id=due.user_id,
                platform=due.platform,
                fetch_type="post_metrics",
                status="failed",
                api_calls_used=calls,
                platform_post_id=due.platform_post_id,
                error_message=str(exc),
            )
            return

        await insert_snapshot(db, snapshot_from_raw(due, raw, now))
        await insert_metric_event(db, event_from_raw(due, raw, now))
        await log_fetch(
            db,
            user_id=due.user_id,
            platform=due.platform,
            fetch_type="post_metrics",
            status="success",
            api_calls_used=raw.api_calls_used,
            platform_post_id=due.platform_post_id,
        )
        self.usage[key] += raw.api_calls_used
        self.summary.processed += 1


async def collect_due_metrics(db: AsyncSession, now: datetime | None = None) -> CollectionSummary:
    """Fetch metrics for every due publication and store the observations.

    Each publication is independent: a platform or credential failure is
    logged and recorded in the fetch log, then the loop moves on. A store
    failure aborts the cycle.
    """
    cycle = _FetchCycle(db, now or datetime.now(timezone.utc))
    for due in await select_due_publications(db, cycle.now):
        await cycle.run(due)

    summary = cycle.summary
    logger.info(
        "Metrics cycle: %d processed, %d failed, %d over budget",
        summary.processed,
        summary.failed,
        summary.skipped_budget,
    )
    return summary


async def refresh_post_metrics(
    db: AsyncSession, user_id: int, post_id: int, now: datetime | None = None
) -> CollectionSummary:
    """Fetch metrics now for every live publication of one post, ignoring decay.

    The daily API budget still applies. Raises NotFoundError for a missing
    or deleted post.
    """
    post = await get_post(db, user_id, post_id)
    cycle = _FetchCycle(db, now or datetime.now(timezone.utc))

    for publication in post.publications:
        if publication.status != "published" or not publication.platform_post_id:
            continue
        await cycle.run(
            DuePublication(
                publication_id=publication.id,
                platform=publication.platform,
                platform_post_id=publication.platform_post_id,
                published_at=publication.published_at or post.published_at or cycle.now,
                user_id=post.user_id,
                post_id=post.id,
            )
        )

    summary = cycle.summary
    logger.info(
        "Manual metrics refresh for post %d: %d refreshed, %d failed, %d over budget",
        post.id,
        summary.processed,
        summary.failed,
        summary.skipped_budget,
    )
    return summary


async def collect_follower_snapshots(
    db: AsyncSession, today: date | None = None
) -> CollectionSummary:
    """Record today's follower count for every active connection."""
    today = today or datetime.now(timezone.utc).date()
    summary = CollectionSummary()

    for connection in await list_active_connections(db):
        try:
            access_token = await get_valid_access_token(db, connection)
            count = await get_adapter(connection.platform).fetch_follower_count(
                access_token, connection.platform_user_id
            )
        except StoreError:
            raise
        except Exception as exc:
            summary.failed += 1
            logger.warning(
                "Follower fetch failed for connection %d (%s): %s",
                connection.id,
                connection.platform,
                exc,
            )
            await log_fetch(
                db,
                user_id=connection.user_id,
                platform=connection.platform,
                fetch_type="follower_stats",
                status="failed",
                api_calls_used=1 if isinstance(exc, AdapterError) else 0,
                error_message=str(exc),
            )
            continue

        previous = await latest_follower_count(
            db, connection.user_id, connection.platform, before=today
        )
        new_followers = count - previous.follower_count if previous is not None else None
        await upsert_snapshot(
            db, connection.user_id, connection.platform, today, count, new_followers
        )
        connection.last_synced_at = datetime.now(timezone.utc)
        await log_fetch(
            db,
            user_id=connection.user_id,
            platform=connection.platform,
            fetch_type="follower_stats",
            status="success",
            api_calls_used=1,
        )
        summary.processed += 1

    logger.info("Follower cycle: %d processed, %d failed", summary.processed, summary.failed)
    return summary


async def cleanup_fetch_logs(db: AsyncSession, now: datetime | None = None) -> int:
    """Drop fetch-log rows older than the configured retention."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=settings.fetch_log_retention_days)
    return await delete_fetch_logs_before(db, cutoff)
