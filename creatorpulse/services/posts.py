"""Post CRUD and scheduling. Status changes go through the post state machine."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.adapters.types import Platform
from creatorpulse.core.exceptions import NotFoundError, ValidationError
from creatorpulse.db.errors import store_operation
from creatorpulse.models.post import Post, PostPublication
from creatorpulse.services.post_state_machine import PostAction, validate_transition

logger = logging.getLogger(__name__)


def _normalize_platforms(platforms: list[str]) -> list[str]:
    if not platforms:
        raise ValidationError("A post needs at least one target platform")
    normalized: list[str] = []
    for name in platforms:
        try:
            platform = Platform(name).value
        except ValueError:
            raise ValidationError(f"Unsupported platform: {name}")
        if platform not in normalized:
            normalized.append(platform)
    return normalized


@store_operation
async def create_post(
    db: AsyncSession,
    user_id: int,
    body: str,
    platforms: list[str],
    tags: list[str] | None = None,
    media_paths: list[str] | None = None,
    intent: str | None = None,
    content_type: str | None = None,
) -> Post:
    """Create a draft with one pending publication per target platform."""
    post = Post(
        user_id=user_id,
        body=body,
        tags=tags or [],
        media_paths=media_paths or [],
        status="draft",
        intent=intent,
        content_type=content_type,
    )
    post.publications = [
        PostPublication(platform=platform, status="pending")
        for platform in _normalize_platforms(platforms)
    ]
    db.add(post)
    await db.commit()
    await db.refresh(post)
    logger.info("Created post %d for user %d", post.id, user_id)
    return post


@store_operation
async def get_post(db: AsyncSession, user_id: int, post_id: int) -> Post:
    """Return a live post owned by the user. Raises NotFoundError otherwise."""
    result = await db.execute(
        select(Post).where(
            Post.id == post_id,
            Post.user_id == user_id,
            Post.deleted_at.is_(None),
        )
    )
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFoundError(f"Post {post_id} not found")
    return post


@store_operation
async def list_posts(
    db: AsyncSession,
    user_id: int,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Post]:
    query = select(Post).where(Post.user_id == user_id, Post.deleted_at.is_(None))
    if status is not None:
        query = query.where(Post.status == status)
    result = await db.execute(query.order_by(Post.created_at.desc()).limit(limit).offset(offset))
    return list(result.scalars().all())


@store_operation
async def update_post(
    db: AsyncSession,
    user_id: int,
    post_id: int,
    body: str | None = None,
    tags: list[str] | None = None,
    media_paths: list[str] | None = None,
    platforms: list[str] | None = None,
) -> Post:
    """Edit content or targets. Published posts cannot be edited."""
    post = await get_post(db, user_id, post_id)
    validate_transition(post.status, PostAction.EDIT)

    if body is not None:
        post.body = body
    if tags is not None:
        post.tags = tags
    if media_paths is not None:
        post.media_paths = media_paths
    if platforms is not None:
        wanted = _normalize_platforms(platforms)
        kept = [p for p in post.publications if p.platform in wanted]
        existing = {p.platform for p in kept}
        post.publications = kept + [
            PostPublication(platform=platform, status="pending")
            for platform in wanted
            if platform not in existing
        ]

    await db.commit()
    await db.refresh(post)
    return post


@store_operation
async def schedule_post(
    db: AsyncSession,
    user_id: int,
    post_id: int,
    scheduled_at: datetime,
    now: datetime | None = None,
) -> Post:
    now = now or datetime.now(timezone.utc)
    if scheduled_at <= now:
        raise ValidationError("scheduled_at must be in the future")

    post = await get_post(db, user_id, post_id)
    post.status = validate_transition(post.status, PostAction.SCHEDULE).value
    post.scheduled_at = scheduled_at
    await db.commit()
    await db.refresh(post)
    logger.info("Post %d scheduled for %s", post.id, scheduled_at.isoformat())
    return post


@store_operation
async def unschedule_post(db: AsyncSession, user_id: int, post_id: int) -> Post:
    post = await get_post(db, user_id, post_id)
    post.status = validate_transition(post.status, PostAction.UNSCHEDULE).value
    post.scheduled_at = None
    await db.commit()
    await db.refresh(post)
    return post


@store_operation
async def delete_post(
    db: AsyncSession, user_id: int, post_id: int, now: datetime | None = None
) -> None:
    """Soft delete: the post disappears from every query but keeps its rows."""
    post = await get_post(db, user_id, post_id)
    validate_transition(post.status, PostAction.DELETE)
    post.deleted_at = now or datetime.now(timezone.utc)
    await db.commit()
    logger.info("Deleted post %d", post.id)
