"""Dashboard aggregates over the latest metric event per publication.

Every query here selects events whose publication went live inside the
trailing window, keeps only the newest event per publication and then sums.
A publication observed many times is therefore counted once.

The per-platform overview works the same way over metric snapshots, which
carry the richer counts (reach, quotes, bookmarks).
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.adapters.types import Platform
from creatorpulse.db.errors import store_operation
from creatorpulse.models.metric_event import MetricEvent
from creatorpulse.models.post import Post, PostPublication
from creatorpulse.services.followers import follower_growth
from creatorpulse.services.snapshots import latest_batch, latest_by_key

logger = logging.getLogger(__name__)


@dataclass
class DashboardMetrics:
    total_impressions: int = 0
    total_likes: int = 0
    total_replies: int = 0
    total_reposts: int = 0
    total_engagement: int = 0
    average_engagement_rate: float = 0.0
    post_count: int = 0


@dataclass
class TimeSeriesPoint:
    date: date
    impressions: int = 0
    likes: int = 0
    replies: int = 0
    reposts: int = 0
    engagement: int = 0


@dataclass
class TopPost:
    publication_id: int
    post_id: int
    platform: str
    body: str
    platform_url: str | None
    published_at: datetime | None
    impressions: int | None
    likes: int | None
    replies: int | None
    reposts: int | None
    engagement_rate: float | None
    observed_at: datetime


def _window_query(
    *entities,
    user_id: int,
    window_days: int,
    platform: str | None,
    now: datetime | None,
):
    """Events joined to their publication, restricted to the trailing window.

    The platform filter is part of the join predicate.
    """
    since = (now or datetime.now(timezone.utc)) - timedelta(days=window_days)
    on_clause = MetricEvent.post_publication_id == PostPublication.id
    if platform is not None:
        on_clause = and_(on_clause, PostPublication.platform == platform)

    return (
        select(*entities)
        .join(PostPublication, on_clause)
        .join(Post, PostPublication.post_id == Post.id)
        .where(
            MetricEvent.user_id == user_id,
            PostPublication.published_at >= since,
            Post.deleted_at.is_(None),
        )
        .order_by(MetricEvent.observed_at.desc())
    )


@store_operation
async def dashboard_metrics(
    db: AsyncSession,
    user_id: int,
    window_days: int,
    platform: str | None = None,
    now: datetime | None = None,
) -> DashboardMetrics:
    """Totals for the window. An empty window yields the zero-valued object."""
    result = await db.execute(
        _window_query(
            MetricEvent, user_id=user_id, window_days=window_days, platform=platform, now=now
        )
    )
    latest = list(latest_by_key(result.scalars().all(), "post_publication_id", "observed_at").values())
    if not latest:
        return DashboardMetrics()

    total_impressions = sum(e.impressions or 0 for e in latest)
    total_likes = sum(e.likes or 0 for e in latest)
    total_replies = sum(e.replies or 0 for e in latest)
    total_reposts = sum(e.reposts or 0 for e in latest)

    rates = [e.engagement_rate for e in latest if e.engagement_rate is not None]
    average_rate = sum(rates) / len(rates) if rates else 0.0

    return DashboardMetrics(
        total_impressions=total_impressions,
        total_likes=total_likes,
        total_replies=total_replies,
        total_reposts=total_reposts,
        total_engagement=total_likes + total_replies + total_reposts,
        average_engagement_rate=average_rate,
        post_count=len(latest),
    )


@store_operation
async def time_series(
    db: AsyncSession,
    user_id: int,
    window_days: int,
    platform: str | None = None,
    now: datetime | None = None,
) -> list[TimeSeriesPoint]:
    """Daily totals by UTC date of observation, oldest day first.

    Each publication contributes once: its latest event, on the day that
    event was observed. The series therefore sums to the dashboard totals.
    """
    result = await db.execute(
        _window_query(
            MetricEvent, user_id=user_id, window_days=window_days, platform=platform, now=now
        )
    )

    latest = latest_by_key(result.scalars().all(), "post_publication_id", "observed_at")

    points: dict[date, TimeSeriesPoint] = {}
    for event in latest.values():
        day = event.observed_at.astimezone(timezone.utc).date()
        point = points.setdefault(day, TimeSeriesPoint(date=day))
        point.impressions += event.impressions or 0
        point.likes += event.likes or 0
        point.replies += event.replies or 0
        point.reposts += event.reposts or 0
        point.engagement += (event.likes or 0) + (event.replies or 0) + (event.reposts or 0)

    return [points[day] for day in sorted(points)]


@store_operation
async def top_posts(
    db: AsyncSession,
    user_id: int,
    window_days: int,
    limit: int,
    platform: str | None = None,
    now: datetime | None = None,
) -> list[TopPost]:
    """Publications ordered by how recently they were observed, newest first.

    This is "most recently active", not a ranking by any single metric.
    """
    result = await db.execute(
        _window_query(
            MetricEvent,
            PostPublication,
            Post.body,
            user_id=user_id,
            window_days=window_days,
            platform=platform,
            now=now,
        )
    )

    seen: dict[int, TopPost] = {}
    for event, publication, body in result.all():
        current = seen.get(publication.id)
        if current is not None and current.observed_at >= event.observed_at:
            continue
        seen[publication.id] = TopPost(
            publication_id=publication.id,
            post_id=publication.post_id,
            platform=publication.platform,
            body=body,
            platform_url=publication.platform_url,
            published_at=publication.published_at,
            impressions=event.impressions,
            likes=event.likes,
            replies=event.replies,
            reposts=event.reposts,
            engagement_rate=event.engagement_rate,
            observed_at=event.observed_at,
        )

    ranked = sorted(seen.values(), key=lambda p: p.observed_at, reverse=True)
    return ranked[:limit]


@dataclass
class PlatformStats:
    platform: str
    posts_count: int = 0
    total_impressions: int = 0
    total_reach: int = 0
    total_reactions: int = 0
    total_comments: int = 0
    total_shares: int = 0
    total_quotes: int = 0
    total_bookmarks: int = 0
    avg_engagement_rate: float = 0.0
    follower_count: int = 0
    follower_growth: int = 0
    follower_growth_rate: float = 0.0


@dataclass
class CombinedStats:
    total_posts: int = 0
    total_impressions: int = 0
    total_engagements: int = 0
    avg_engagement_rate: float = 0.0
    total_follower_growth: int = 0


@dataclass
class PlatformOverview:
    platforms: list[PlatformStats]
    combined: CombinedStats


def _engagements(snapshot) -> int:
    return (
        (snapshot.reactions or 0)
        + (snapshot.comments or 0)
        + (snapshot.shares or 0)
        + (snapshot.quotes or 0)
    )


@store_operation
async def _published_in_window(
    db: AsyncSession, user_id: int, since: datetime
) -> list[tuple[str, str]]:
    result = await db.execute(
        select(PostPublication.platform, PostPublication.platform_post_id)
        .join(Post, PostPublication.post_id == Post.id)
        .where(
            Post.user_id == user_id,
            Post.deleted_at.is_(None),
            PostPublication.status == "published",
            PostPublication.platform_post_id.is_not(None),
            PostPublication.published_at >= since,
        )
    )
    return [(platform, platform_post_id) for platform, platform_post_id in result.all()]


async def platform_overview(
    db: AsyncSession,
    user_id: int,
    window_days: int,
    now: datetime | None = None,
) -> PlatformOverview:
    """Per-platform totals from the latest snapshot of each publication, with follower growth.

    avg_engagement_rate is a percentage: the mean over the platform's
    publications of engagements / impressions, counting publications without
    impressions as zero. The combined rate is the mean over platforms that
    published in the window.
    """
    now = now or datetime.now(timezone.utc)
    published = await _published_in_window(db, user_id, now - timedelta(days=window_days))
    snapshots = await latest_batch(db, user_id, [post_id for _, post_id in published])

    stats = {platform.value: PlatformStats(platform=platform.value) for platform in Platform}
    rate_sums: dict[str, float] = {platform: 0.0 for platform in stats}

    for platform, platform_post_id in published:
        entry = stats.get(platform)
        if entry is None:
            continue
        entry.posts_count += 1
        snapshot = snapshots.get(platform_post_id)
        if snapshot is None or snapshot.platform != platform:
            continue
        entry.total_impressions += snapshot.impressions or 0
        entry.total_reach += snapshot.unique_reach or 0
        entry.total_reactions += snapshot.reactions or 0
        entry.total_comments += snapshot.comments or 0
        entry.total_shares += snapshot.shares or 0
        entry.total_quotes += snapshot.quotes or 0
        entry.total_bookmarks += snapshot.bookmarks or 0
        if snapshot.impressions:
            rate_sums[platform] += _engagements(snapshot) / snapshot.impressions * 100

    for platform, entry in stats.items():
        if entry.posts_count:
            entry.avg_engagement_rate = rate_sums[platform] / entry.posts_count
        growth = await follower_growth(db, user_id, platform, window_days, today=now.date())
        entry.follower_count = growth.current_count
        entry.follower_growth = growth.net_growth
        entry.follower_growth_rate = growth.growth_rate

    active = [entry for entry in stats.values() if entry.posts_count]
    combined = CombinedStats(
        total_posts=sum(entry.posts_count for entry in stats.values()),
        total_impressions=sum(entry.total_impressions for entry in stats.values()),
        total_engagements=sum(
            entry.total_reactions + entry.total_comments + entry.total_shares + entry.total_quotes
            for entry in stats.values()
        ),
        avg_engagement_rate=(
            sum(entry.avg_engagement_rate for entry in active) / len(active) if active else 0.0
        ),
        total_follower_growth=sum(entry.follower_growth for entry in stats.values()),
    )
    return PlatformOverview(platforms=list(stats.values()), combined=combined)
