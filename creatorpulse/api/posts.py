from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.api.schemas import (
    MetricsRefreshResponse,
    PostCreate,
    PostResponse,
    PostUpdate,
    PublishOutcomeResponse,
    SchedulePostRequest,
)
from creatorpulse.core.cache import invalidate_user_analytics
from creatorpulse.core.config import settings
from creatorpulse.core.deps import get_db
from creatorpulse.core.rate_limit import limiter
from creatorpulse.core.security import get_current_user
from creatorpulse.models.user import User
from creatorpulse.services import collection as collection_svc
from creatorpulse.services import posts as posts_svc
from creatorpulse.services import publishing as publishing_svc
from creatorpulse.services.post_state_machine import PostStatus

router = APIRouter(prefix="/posts", tags=["posts"])


@router.post("", response_model=PostResponse, status_code=201)
@limiter.limit(settings.rate_limit_default)
async def create_post(
    request: Request,
    body: PostCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await posts_svc.create_post(
        db,
        user.id,
        body=body.body,
        platforms=[p.value for p in body.platforms],
        tags=body.tags,
        media_paths=body.media_paths,
        intent=body.intent,
        content_type=body.content_type,
    )


@router.get("", response_model=list[PostResponse])
async def list_posts(
    status: PostStatus | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await posts_svc.list_posts(db, user.id, status=status, limit=limit, offset=offset)


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await posts_svc.get_post(db, user.id, post_id)


@router.patch("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: int,
    body: PostUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await posts_svc.update_post(
        db,
        user.id,
        post_id,
        body=body.body,
        tags=body.tags,
        media_paths=body.media_paths,
        platforms=[p.value for p in body.platforms] if body.platforms is not None else None,
    )


@router.delete("/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    await posts_svc.delete_post(db, user.id, post_id)
    await invalidate_user_analytics(user.id)


@router.post("/{post_id}/schedule", response_model=PostResponse)
async def schedule_post(
    post_id: int,
    body: SchedulePostRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await posts_svc.schedule_post(db, user.id, post_id, body.scheduled_at)


@router.post("/{post_id}/unschedule", response_model=PostResponse)
async def unschedule_post(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await posts_svc.unschedule_post(db, user.id, post_id)


@router.post("/{post_id}/publish", response_model=PublishOutcomeResponse)
@limiter.limit(settings.rate_limit_publish)
async def publish_post(
    request: Request,
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Publish now. Partial failures come back per platform with status 200."""
    outcome = await publishing_svc.publish_post(db, user.id, post_id)
    await invalidate_user_analytics(user.id)
    return outcome


@router.post("/{post_id}/metrics/refresh", response_model=MetricsRefreshResponse)
@limiter.limit(settings.rate_limit_publish)
async def refresh_post_metrics(
    request: Request,
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Fetch this post's metrics now instead of waiting for the polling cycle."""
    summary = await collection_svc.refresh_post_metrics(db, user.id, post_id)
    await invalidate_user_analytics(user.id)
    return MetricsRefreshResponse(
        refreshed=summary.processed,
        failed=summary.failed,
        skipped_budget=summary.skipped_budget,
    )
