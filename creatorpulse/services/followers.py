"""Daily follower snapshots and growth over a trailing window."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.db.errors import store_operation
from creatorpulse.models.follower_snapshot import FollowerSnapshot

logger = logging.getLogger(__name__)


@dataclass
class FollowerGrowth:
    current_count: int = 0
    start_count: int = 0
    net_growth: int = 0
    growth_rate: float = 0.0
    daily: list[FollowerSnapshot] = field(default_factory=list)


@store_operation
async def upsert_snapshot(
    db: AsyncSession,
    user_id: int,
    platform: str,
    snapshot_date: date,
    follower_count: int,
    new_followers: int | None = None,
) -> FollowerSnapshot:
    """Write the day's count. Re-running for the same day overwrites it."""
    stmt = insert(FollowerSnapshot).values(
        user_id=user_id,
        platform=platform,
        snapshot_date=snapshot_date,
        follower_count=follower_count,
        new_followers=new_followers,
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_follower_snapshots_user_platform_date",
        set_={
            "follower_count": stmt.excluded.follower_count,
            "new_followers": stmt.excluded.new_followers,
            "updated_at": datetime.now(timezone.utc),
        },
    ).returning(FollowerSnapshot)

    result = await db.execute(stmt)
    snapshot = result.scalar_one()
    await db.commit()
    return snapshot


def _window_start(window_days: int, today: date | None = None) -> date:
    return (today or datetime.now(timezone.utc).date()) - timedelta(days=window_days)


@store_operation
async def follower_history(
    db: AsyncSession,
    user_id: int,
    platform: str,
    window_days: int,
    today: date | None = None,
) -> list[FollowerSnapshot]:
    """Snapshots inside the window, oldest first."""
    result = await db.execute(
        select(FollowerSnapshot)
        .where(
            FollowerSnapshot.user_id == user_id,
            FollowerSnapshot.platform == platform,
            FollowerSnapshot.snapshot_date >= _window_start(window_days, today),
        )
        .order_by(FollowerSnapshot.snapshot_date.asc())
    )
    return list(result.scalars().all())


@store_operation
async def latest_follower_count(
    db: AsyncSession, user_id: int, platform: str, before: date | None = None
) -> FollowerSnapshot | None:
    """Newest snapshot, optionally only among days strictly before ``before``."""
    query = select(FollowerSnapshot).where(
        FollowerSnapshot.user_id == user_id,
        FollowerSnapshot.platform == platform,
    )
    if before is not None:
        query = query.where(FollowerSnapshot.snapshot_date < before)
    result = await db.execute(query.order_by(FollowerSnapshot.snapshot_date.desc()).limit(1))
    return result.scalar_one_or_none()


async def follower_growth(
    db: AsyncSession,
    user_id: int,
    platform: str,
    window_days: int,
    today: date | None = None,
) -> FollowerGrowth:
    """Net growth between the first and last snapshot of the window.

    growth_rate is a percentage of the starting count, 0.0 when that is zero.
    No snapshots gives all zeros; one snapshot gives zero growth.
    """
    snapshots = await follower_history(db, user_id, platform, window_days, today)
    if not snapshots:
        return FollowerGrowth()

    start_count = snapshots[0].follower_count
    current_count = snapshots[-1].follower_count
    net_growth = current_count - start_count
    growth_rate = net_growth / start_count * 100 if start_count > 0 else 0.0

    return FollowerGrowth(
        current_count=current_count,
        start_count=start_count,
        net_growth=net_growth,
        growth_rate=growth_rate,
        daily=snapshots,
    )
