"""Tests for post CRUD, scheduling and soft delete."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from creatorpulse.core.exceptions import NotFoundError, StoreError, ValidationError
from creatorpulse.models.post import Post, PostPublication
from creatorpulse.services.posts import (
    create_post,
    delete_post,
    get_post,
    schedule_post,
    unschedule_post,
    update_post,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _db_returning(post: Post | None) -> AsyncMock:
    db = AsyncMock()
    db.add = MagicMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = post
    db.execute = AsyncMock(return_value=result)
    return db


def _existing(status: str = "draft", platforms: tuple[str, ...] = ("twitter",)) -> Post:
    post = Post(user_id=1, body="hello", tags=[], media_paths=[], status=status)
    object.__setattr__(post, "id", 10)
    post.publications = [PostPublication(platform=p, status="pending") for p in platforms]
    return post


class TestCreatePost:
    @pytest.mark.asyncio
    async def test_one_pending_publication_per_platform(self):
        db = _db_returning(None)

        async def assign_id(post):
            object.__setattr__(post, "id", 10)

        db.refresh = AsyncMock(side_effect=assign_id)

        post = await create_post(db, 1, "hello", ["twitter", "linkedin", "twitter"], tags=["a"])

        assert post.status == "draft"
        assert [p.platform for p in post.publications] == ["twitter", "linkedin"]
        assert all(p.status == "pending" for p in post.publications)
        db.add.assert_called_once_with(post)
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_platform_rejected(self):
        db = _db_returning(None)
        with pytest.raises(ValidationError, match="Unsupported platform"):
            await create_post(db, 1, "hello", ["myspace"])
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_platform_rejected(self):
        with pytest.raises(ValidationError):
            await create_post(_db_returning(None), 1, "hello", [])

    @pytest.mark.asyncio
    async def test_store_failure_keeps_driver_message(self):
        db = _db_returning(None)
        db.commit = AsyncMock(
            side_effect=OperationalError("INSERT", {}, Exception("connection reset by peer"))
        )
        with pytest.raises(StoreError, match="connection reset by peer"):
            await create_post(db, 1, "hello", ["twitter"])


class TestGetPost:
    @pytest.mark.asyncio
    async def test_missing_or_deleted_is_not_found(self):
        with pytest.raises(NotFoundError, match="Post 10 not found"):
            await get_post(_db_returning(None), 1, 10)

    @pytest.mark.asyncio
    async def test_query_excludes_deleted_posts(self):
        db = _db_returning(_existing())
        await get_post(db, 1, 10)
        stmt = db.execute.await_args.args[0]
        assert "deleted_at IS NULL" in str(stmt)


class TestUpdatePost:
    @pytest.mark.asyncio
    async def test_changing_platforms_keeps_existing_publications(self):
        post = _existing(platforms=("twitter", "linkedin"))
        twitter = post.publications[0]
        db = _db_returning(post)

        await update_post(db, 1, 10, body="changed", platforms=["twitter", "threads"])

        assert post.body == "changed"
        assert [p.platform for p in post.publications] == ["twitter", "threads"]
        assert post.publications[0] is twitter

    @pytest.mark.asyncio
    async def test_published_post_is_frozen(self):
        post = _existing(status="published")
        db = _db_returning(post)

        with pytest.raises(ValidationError):
            await update_post(db, 1, 10, body="changed")

        assert post.body == "hello"
        db.commit.assert_not_awaited()


class TestScheduling:
    @pytest.mark.asyncio
    async def test_schedule_in_future(self):
        post = _existing()
        when = NOW + timedelta(hours=2)

        await schedule_post(_db_returning(post), 1, 10, when, now=NOW)

        assert post.status == "scheduled"
        assert post.scheduled_at == when

    @pytest.mark.asyncio
    async def test_schedule_in_past_rejected(self):
        post = _existing()
        with pytest.raises(ValidationError, match="future"):
            await schedule_post(_db_returning(post), 1, 10, NOW - timedelta(minutes=1), now=NOW)
        assert post.status == "draft"

    @pytest.mark.asyncio
    async def test_failed_post_can_be_rescheduled(self):
        post = _existing(status="failed")
        await schedule_post(_db_returning(post), 1, 10, NOW + timedelta(days=1), now=NOW)
        assert post.status == "scheduled"

    @pytest.mark.asyncio
    async def test_unschedule_returns_to_draft(self):
        post = _existing(status="scheduled")
        post.scheduled_at = NOW + timedelta(hours=1)

        await unschedule_post(_db_returning(post), 1, 10)

        assert post.status == "draft"
        assert post.scheduled_at is None

    @pytest.mark.asyncio
    async def test_unschedule_draft_rejected(self):
        with pytest.raises(ValidationError):
            await unschedule_post(_db_returning(_existing()), 1, 10)


class TestDeletePost:
    @pytest.mark.asyncio
    async def test_soft_delete_keeps_status(self):
        post = _existing(status="published")
        db = _db_returning(post)

        await delete_post(db, 1, 10, now=NOW)

        assert post.deleted_at == NOW
        assert post.status == "published"
        db.delete.assert_not_called()
        db.commit.assert_awaited_once()
