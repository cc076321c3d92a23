"""Publish one logical post to each of its target platforms.

Per publication: resolve credentials, get a valid access token, upload
media, build the platform text and publish. A failure on one platform is
recorded on that publication only; the post is ``published`` when at least
one platform succeeded and ``failed`` when all of them failed.

Token resolution and every DB write run sequentially on the caller's
session. The network stages (media transfer and publish) for different
platforms run concurrently, bounded by ``settings.publish_concurrency``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.adapters import PlatformPostResult, PostPayload, get_adapter
from creatorpulse.adapters.platform_config import char_limit_for, mime_type_for
from creatorpulse.core.config import settings
from creatorpulse.core.exceptions import NotFoundError, StoreError, ValidationError
from creatorpulse.db.errors import store_operation
from creatorpulse.models.post import Post, PostPublication
from creatorpulse.services import media
from creatorpulse.services.connections import get_valid_access_token, require_connection
from creatorpulse.services.post_state_machine import (
    PostAction,
    ensure_publishable,
    validate_transition,
)
from creatorpulse.services.posts import get_post

logger = logging.getLogger(__name__)


@dataclass
class PlatformPublishResult:
    publication_id: int
    platform: str
    success: bool
    platform_post_id: str | None = None
    platform_url: str | None = None
    error: str | None = None


@dataclass
class PublishOutcome:
    post_id: int
    status: str
    results: list[PlatformPublishResult] = field(default_factory=list)


@dataclass
class _Delivery:
    """A publication whose credentials resolved and is ready for the network stage."""

    publication: PostPublication
    access_token: str
    author_id: str


def build_publish_text(body: str, tags: list[str], limit: int) -> str:
    """Append `` #tag`` suffixes for the longest prefix of ``tags`` that fits.

    Tags are dropped from the end first. The body is never truncated, so a
    body already at or over ``limit`` is returned unchanged.
    """
    text = body
    for tag in tags:
        candidate = f"{text} #{tag}"
        if len(candidate) > limit:
            break
        text = candidate
    return text


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


async def _deliver(post: Post, delivery: _Delivery) -> PlatformPostResult:
    """Network stage for one platform: media upload then publish."""
    platform = delivery.publication.platform
    adapter = get_adapter(platform)

    media_ids: list[str] = []
    try:
        for path in post.media_paths or []:
            data = await media.download_image(path)
            media_ids.append(
                await adapter.upload_media(
                    delivery.access_token, data, mime_type_for(path), author_id=delivery.author_id
                )
            )

        payload = PostPayload(
            text=build_publish_text(post.body, post.tags or [], char_limit_for(platform)),
            media_ids=media_ids,
            author_id=delivery.author_id,
        )
        return await adapter.publish(delivery.access_token, payload)
    finally:
        await adapter.release_media()


async def _deliver_all(
    post: Post, deliveries: list[_Delivery]
) -> list[PlatformPostResult | Exception]:
    semaphore = asyncio.Semaphore(max(1, settings.publish_concurrency))

    async def run(delivery: _Delivery) -> PlatformPostResult | Exception:
        async with semaphore:
            try:
                return await _deliver(post, delivery)
            except Exception as exc:
                logger.warning(
                    "Publishing post %d to %s failed: %s",
                    post.id,
                    delivery.publication.platform,
                    exc,
                )
                return exc

    return await asyncio.gather(*(run(d) for d in deliveries))


def _mark_failed(publication: PostPublication, message: str) -> PlatformPublishResult:
    publication.status = "failed"
    publication.error_message = message
    return PlatformPublishResult(
        publication_id=publication.id,
        platform=publication.platform,
        success=False,
        error=message,
    )


def _mark_published(
    publication: PostPublication, result: PlatformPostResult
) -> PlatformPublishResult:
    publication.status = "published"
    publication.platform_post_id = result.platform_post_id
    publication.platform_url = result.platform_url
    publication.published_at = result.published_at
    publication.error_message = None
    return PlatformPublishResult(
        publication_id=publication.id,
        platform=publication.platform,
        success=True,
        platform_post_id=result.platform_post_id,
        platform_url=result.platform_url,
    )


async def publish_post(
    db: AsyncSession,
    user_id: int,
    post_id: int,
    now: datetime | None = None,
) -> PublishOutcome:
    """Fan a post out to its platforms and derive the post status.

    Raises NotFoundError for a missing or deleted post and ValidationError
    when the post is not in a publishable state. Platform failures never
    raise; they are reported in the outcome.
    """
    now = now or datetime.now(timezone.utc)
    post = await get_post(db, user_id, post_id)
    ensure_publishable(post.status)

    publications = list(post.publications)
    if not publications:
        raise ValidationError(f"Post {post_id} has no target platforms")

    results: dict[int, PlatformPublishResult] = {}
    deliveries: list[_Delivery] = []

    for publication in publications:
        if publication.status == "published":
            # Already live from an earlier attempt
            results[publication.id] = PlatformPublishResult(
                publication_id=publication.id,
                platform=publication.platform,
                success=True,
                platform_post_id=publication.platform_post_id,
                platform_url=publication.platform_url,
            )
            continue

        publication.status = "pending"
        publication.error_message = None
        try:
            connection = await require_connection(db, user_id, publication.platform)
            access_token = await get_valid_access_token(db, connection, now)
        except StoreError:
            raise
        except Exception as exc:
            logger.warning(
                "No usable credentials for post %d on %s: %s", post.id, publication.platform, exc
            )
            results[publication.id] = _mark_failed(publication, _error_message(exc))
            continue

        deliveries.append(_Delivery(publication, access_token, connection.platform_user_id))

    delivered = await _deliver_all(post, deliveries)

    for delivery, outcome in zip(deliveries, delivered):
        publication = delivery.publication
        if isinstance(outcome, Exception):
            results[publication.id] = _mark_failed(publication, _error_message(outcome))
        else:
            results[publication.id] = _mark_published(publication, outcome)
            logger.info(
                "Post %d published to %s as %s",
                post.id,
                publication.platform,
                outcome.platform_post_id,
            )

    ordered = [results[p.id] for p in publications]
    if any(r.success for r in ordered):
        post.status = validate_transition(post.status, PostAction.MARK_PUBLISHED).value
        post.published_at = post.published_at or now
    else:
        post.status = validate_transition(post.status, PostAction.MARK_FAILED).value

    await _commit(db)
    logger.info(
        "Post %d finished publishing: %s (%d/%d platforms)",
        post.id,
        post.status,
        sum(r.success for r in ordered),
        len(ordered),
    )

    # Media is shared by every platform, so it can go only once all of them have it
    if post.media_paths and all(r.success for r in ordered):
        deleted = await media.cleanup_media(list(post.media_paths))
        logger.info("Cleaned up %d/%d media objects for post %d", deleted, len(post.media_paths), post.id)

    return PublishOutcome(post_id=post.id, status=post.status, results=ordered)


@store_operation
async def _commit(db: AsyncSession) -> None:
    await db.commit()


@store_operation
async def _due_scheduled_posts(db: AsyncSession, now: datetime) -> list[tuple[int, int]]:
    result = await db.execute(
        select(Post.id, Post.user_id)
        .where(
            Post.status == "scheduled",
            Post.scheduled_at <= now,
            Post.deleted_at.is_(None),
        )
        .order_by(Post.scheduled_at)
    )
    return [(post_id, user_id) for post_id, user_id in result.all()]


async def publish_due_scheduled_posts(
    db: AsyncSession, now: datetime | None = None
) -> list[PublishOutcome]:
    """Publish every scheduled post whose time has come."""
    now = now or datetime.now(timezone.utc)
    outcomes: list[PublishOutcome] = []

    for post_id, user_id in await _due_scheduled_posts(db, now):
        try:
            outcomes.append(await publish_post(db, user_id, post_id, now))
        except (NotFoundError, ValidationError) as exc:
            # Deleted, edited or published by the user since the query ran
            logger.info("Skipping scheduled post %d: %s", post_id, exc)

    return outcomes
