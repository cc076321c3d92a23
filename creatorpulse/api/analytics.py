"""Read-only analytics for the signed-in creator."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.adapters.types import Platform
from creatorpulse.api.schemas import (
    DashboardMetricsResponse,
    FollowerGrowthResponse,
    LatestSnapshotsRequest,
    MetricEventResponse,
    MetricSnapshotResponse,
    PlatformOverviewResponse,
    PostMetricsResponse,
    SnapshotSeriesResponse,
    TimeSeriesPointResponse,
    TopPostResponse,
)
from creatorpulse.core.cache import analytics_key, cache_get_json, cache_set_json
from creatorpulse.core.deps import get_db
from creatorpulse.core.security import get_current_user
from creatorpulse.models.user import User
from creatorpulse.services import aggregation as aggregation_svc
from creatorpulse.services import followers as followers_svc
from creatorpulse.services import metrics as metrics_svc
from creatorpulse.services import posts as posts_svc
from creatorpulse.services import snapshots as snapshots_svc

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/overview", response_model=DashboardMetricsResponse)
async def overview(
    days: int = Query(30, ge=1, le=365),
    platform: Platform | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    key = analytics_key(user.id, "overview", days, platform)
    cached = await cache_get_json(key)
    if cached is not None:
        return cached

    metrics = await aggregation_svc.dashboard_metrics(db, user.id, days, platform)
    response = DashboardMetricsResponse.model_validate(metrics)
    await cache_set_json(key, response.model_dump(mode="json"))
    return response


@router.get("/overview/platforms", response_model=PlatformOverviewResponse)
async def platform_overview(
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Per-platform breakdown with follower growth, plus a combined block."""
    key = analytics_key(user.id, "overview-platforms", days)
    cached = await cache_get_json(key)
    if cached is not None:
        return cached

    overview = await aggregation_svc.platform_overview(db, user.id, days)
    response = PlatformOverviewResponse.model_validate(overview)
    await cache_set_json(key, response.model_dump(mode="json"))
    return response


@router.get("/time-series", response_model=list[TimeSeriesPointResponse])
async def time_series(
    days: int = Query(30, ge=1, le=365),
    platform: Platform | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    key = analytics_key(user.id, "time-series", days, platform)
    cached = await cache_get_json(key)
    if cached is not None:
        return cached

    points = await aggregation_svc.time_series(db, user.id, days, platform)
    response = [TimeSeriesPointResponse.model_validate(p) for p in points]
    await cache_set_json(key, [p.model_dump(mode="json") for p in response])
    return response


@router.get("/top-posts", response_model=list[TopPostResponse])
async def top_posts(
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(5, ge=1, le=50),
    platform: Platform | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Most recently observed publications in the window (not ranked by a metric)."""
    return await aggregation_svc.top_posts(db, user.id, days, limit, platform)


@router.get("/followers", response_model=FollowerGrowthResponse)
async def followers(
    platform: Platform,
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    growth = await followers_svc.follower_growth(db, user.id, platform, days)
    return FollowerGrowthResponse.model_validate(growth)


@router.get("/posts/{post_id}", response_model=PostMetricsResponse)
async def post_metrics(
    post_id: int,
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await posts_svc.get_post(db, user.id, post_id)
    latest = await metrics_svc.latest_metrics_for_post(db, user.id, post_id)
    history = await metrics_svc.metrics_for_post(db, user.id, post_id, limit=limit)
    return PostMetricsResponse(
        post_id=post_id,
        latest=[MetricEventResponse.model_validate(e) for e in latest.values()],
        history=[MetricEventResponse.model_validate(e) for e in history],
    )


@router.post("/snapshots/latest", response_model=dict[str, MetricSnapshotResponse])
async def latest_snapshots(
    body: LatestSnapshotsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Latest snapshot per platform post id; ids never fetched are omitted."""
    return await snapshots_svc.latest_batch(db, user.id, body.platform_post_ids)


@router.get("/snapshots/{platform}/{platform_post_id}", response_model=SnapshotSeriesResponse)
async def snapshot_series(
    platform: Platform,
    platform_post_id: str,
    limit: int = Query(100, ge=1, le=1000),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    latest = await snapshots_svc.latest_for_post(db, user.id, platform_post_id, platform)
    series = await snapshots_svc.series_for_post(
        db, user.id, platform_post_id, platform, limit=limit
    )
    return SnapshotSeriesResponse(
        latest=MetricSnapshotResponse.model_validate(latest) if latest else None,
        series=[MetricSnapshotResponse.model_validate(s) for s in series],
    )
