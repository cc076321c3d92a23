"""Tests for the metrics and follower collection cycles."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from creatorpulse.adapters.types import RawMetrics
from creatorpulse.core.exceptions import AdapterError, CredentialError, NotFoundError, StoreError
from creatorpulse.models.follower_snapshot import FollowerSnapshot
from creatorpulse.models.platform_connection import PlatformConnection
from creatorpulse.models.post import Post, PostPublication
from creatorpulse.services.collection import (
    cleanup_fetch_logs,
    collect_due_metrics,
    collect_follower_snapshots,
    event_from_raw,
    refresh_post_metrics,
    snapshot_from_raw,
)
from creatorpulse.services.due_publications import DuePublication

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
SVC = "creatorpulse.services.collection"

RAW = RawMetrics(impressions=1000, likes=40, replies=5, reposts=3, clicks=12, api_calls_used=2)


def _due(publication_id: int = 1, platform: str = "twitter", user_id: int = 1) -> DuePublication:
    return DuePublication(
        publication_id=publication_id,
        platform=platform,
        platform_post_id=f"{platform}-{publication_id}",
        published_at=NOW - timedelta(hours=3),
        user_id=user_id,
        post_id=100 + publication_id,
    )


def _adapter(fetch_side_effect=None) -> MagicMock:
    adapter = MagicMock()
    adapter.fetch_metrics = AsyncMock(side_effect=fetch_side_effect, return_value=RAW)
    adapter.fetch_follower_count = AsyncMock(return_value=1250)
    return adapter


class _MetricsCycle:
    def __init__(
        self, due: list[DuePublication], used_today: int = 0, adapter=None, require=None, post=None
    ):
        self.adapter = adapter or _adapter()
        self.mocks = {
            "select_due_publications": AsyncMock(return_value=due),
            "api_calls_used_today": AsyncMock(return_value=used_today),
            "require_connection": require or AsyncMock(return_value=MagicMock()),
            "get_valid_access_token": AsyncMock(return_value="token"),
            "get_adapter": MagicMock(return_value=self.adapter),
            "insert_snapshot": AsyncMock(),
            "insert_metric_event": AsyncMock(),
            "log_fetch": AsyncMock(),
            "get_post": AsyncMock(return_value=post),
        }
        self.patches = [patch(f"{SVC}.{name}", mock) for name, mock in self.mocks.items()]

    def __enter__(self):
        for p in self.patches:
            p.start()
        return self.mocks

    def __exit__(self, *exc):
        for p in reversed(self.patches):
            p.stop()


class TestMapping:
    def test_snapshot_uses_normalised_names(self):
        snapshot = snapshot_from_raw(_due(), RAW, NOW)
        assert snapshot.reactions == 40
        assert snapshot.comments == 5
        assert snapshot.shares == 3
        assert snapshot.impressions == 1000
        assert snapshot.fetched_at == NOW
        assert snapshot.post_id == 101

    def test_event_keeps_publication_age_inputs(self):
        event = event_from_raw(_due(), RAW, NOW)
        assert event.post_publication_id == 1
        assert event.published_at == NOW - timedelta(hours=3)
        assert event.observed_at == NOW
        assert event.clicks == 12


def _post_with_publications() -> Post:
    post = Post(
        user_id=1, body="Launch notes", status="published", published_at=NOW - timedelta(days=3)
    )
    object.__setattr__(post, "id", 55)
    rows = [
        ("twitter", "published", "tw-9"),
        ("linkedin", "failed", None),
        ("threads", "published", "th-9"),
        ("linkedin", "published", None),
    ]
    publications = []
    for i, (platform, status, platform_post_id) in enumerate(rows, start=1):
        pub = PostPublication(
            post_id=55, platform=platform, status=status, platform_post_id=platform_post_id
        )
        object.__setattr__(pub, "id", 500 + i)
        publications.append(pub)
    publications[0].published_at = NOW - timedelta(days=2)
    post.publications = publications
    return post


class TestRefreshPostMetrics:
    @pytest.mark.asyncio
    async def test_fetches_every_live_publication_regardless_of_decay(self):
        post = _post_with_publications()
        with _MetricsCycle([], post=post) as mocks:
            summary = await refresh_post_metrics(AsyncMock(), 1, 55, NOW)

        assert summary.processed == 2
        mocks["get_post"].assert_awaited_once()
        mocks["select_due_publications"].assert_not_awaited()
        fetched = [c.args[1] for c in mocks["get_adapter"].return_value.fetch_metrics.await_args_list]
        assert fetched == ["tw-9", "th-9"]
        events = [c.args[1] for c in mocks["insert_metric_event"].await_args_list]
        assert [e.post_publication_id for e in events] == [501, 503]
        assert events[0].published_at == NOW - timedelta(days=2)
        # Falls back to the post publish time when the publication has none
        assert events[1].published_at == post.published_at

    @pytest.mark.asyncio
    async def test_budget_still_applies(self):
        with _MetricsCycle([], used_today=10_000, post=_post_with_publications()) as mocks:
            summary = await refresh_post_metrics(AsyncMock(), 1, 55, NOW)

        assert summary.skipped_budget == 2
        mocks["get_adapter"].assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_reported_per_publication(self):
        adapter = _adapter(fetch_side_effect=[AdapterError("twitter", "twitter API error (404)"), RAW])
        with _MetricsCycle([], adapter=adapter, post=_post_with_publications()):
            summary = await refresh_post_metrics(AsyncMock(), 1, 55, NOW)

        assert (summary.processed, summary.failed) == (1, 1)

    @pytest.mark.asyncio
    async def test_missing_post(self):
        with _MetricsCycle([]) as mocks:
            mocks["get_post"].side_effect = NotFoundError("Post 55 not found")
            with pytest.raises(NotFoundError):
                await refresh_post_metrics(AsyncMock(), 1, 55, NOW)


class TestCollectDueMetrics:
    @pytest.mark.asyncio
    async def test_success_writes_snapshot_event_and_log(self):
        with _MetricsCycle([_due()]) as mocks:
            summary = await collect_due_metrics(AsyncMock(), NOW)

        assert summary.processed == 1
        assert summary.failed == 0
        mocks["insert_snapshot"].assert_awaited_once()
        mocks["insert_metric_event"].assert_awaited_once()
        log_kwargs = mocks["log_fetch"].await_args.kwargs
        assert log_kwargs["status"] == "success"
        assert log_kwargs["api_calls_used"] == 2
        assert log_kwargs["platform_post_id"] == "twitter-1"

    @pytest.mark.asyncio
    async def test_over_budget_skipped_without_fetch(self):
        with _MetricsCycle([_due()], used_today=500) as mocks:
            summary = await collect_due_metrics(AsyncMock(), NOW)

        assert summary.skipped_budget == 1
        assert summary.processed == 0
        mocks["get_adapter"].assert_not_called()
        mocks["log_fetch"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_budget_counts_calls_made_this_cycle(self):
        due = [_due(i) for i in range(1, 4)]
        # 497 used + 2 per fetch: the first fetch reaches 499, the second 501
        with _MetricsCycle(due, used_today=497) as mocks:
            summary = await collect_due_metrics(AsyncMock(), NOW)

        assert summary.processed == 2
        assert summary.skipped_budget == 1
        mocks["api_calls_used_today"].assert_awaited_once()

    @pytest.mark.asyncio
    async def test_adapter_failure_logged_and_cycle_continues(self):
        adapter = _adapter(fetch_side_effect=[AdapterError("twitter", "twitter API error (500)"), RAW])
        with _MetricsCycle([_due(1), _due(2)], adapter=adapter) as mocks:
            summary = await collect_due_metrics(AsyncMock(), NOW)

        assert summary.failed == 1
        assert summary.processed == 1
        failed_log = mocks["log_fetch"].await_args_list[0].kwargs
        assert failed_log["status"] == "failed"
        assert failed_log["api_calls_used"] == 1
        assert failed_log["error_message"] == "twitter API error (500)"
        mocks["insert_snapshot"].assert_awaited_once()

    @pytest.mark.asyncio
    async def test_credential_failure_costs_no_api_call(self):
        require = AsyncMock(side_effect=CredentialError("linkedin", "No linkedin account connected"))
        with _MetricsCycle([_due(platform="linkedin")], require=require) as mocks:
            summary = await collect_due_metrics(AsyncMock(), NOW)

        assert summary.failed == 1
        assert mocks["log_fetch"].await_args.kwargs["api_calls_used"] == 0
        mocks["get_adapter"].assert_not_called()

    @pytest.mark.asyncio
    async def test_store_failure_aborts_cycle(self):
        with _MetricsCycle([_due(1), _due(2)]) as mocks:
            mocks["insert_snapshot"].side_effect = StoreError("disk full")
            with pytest.raises(StoreError, match="disk full"):
                await collect_due_metrics(AsyncMock(), NOW)

        assert mocks["get_adapter"].return_value.fetch_metrics.await_count == 1

    @pytest.mark.asyncio
    async def test_nothing_due(self):
        with _MetricsCycle([]) as mocks:
            summary = await collect_due_metrics(AsyncMock(), NOW)

        assert summary.processed == summary.failed == summary.skipped_budget == 0
        mocks["api_calls_used_today"].assert_not_awaited()


def _connection(platform: str = "twitter") -> PlatformConnection:
    conn = PlatformConnection(user_id=1, platform=platform, platform_user_id="u-1", status="active")
    object.__setattr__(conn, "id", 3)
    return conn


class TestCollectFollowerSnapshots:
    @pytest.mark.asyncio
    async def test_new_followers_against_previous_day(self):
        conn = _connection()
        previous = FollowerSnapshot(
            user_id=1, platform="twitter", snapshot_date=date(2026, 3, 9), follower_count=1200
        )
        upsert = AsyncMock()
        with (
            patch(f"{SVC}.list_active_connections", AsyncMock(return_value=[conn])),
            patch(f"{SVC}.get_valid_access_token", AsyncMock(return_value="token")),
            patch(f"{SVC}.get_adapter", MagicMock(return_value=_adapter())),
            patch(f"{SVC}.latest_follower_count", AsyncMock(return_value=previous)) as latest,
            patch(f"{SVC}.upsert_snapshot", upsert),
            patch(f"{SVC}.log_fetch", AsyncMock()),
        ):
            summary = await collect_follower_snapshots(AsyncMock(), date(2026, 3, 10))

        assert summary.processed == 1
        upsert.assert_awaited_once()
        assert upsert.await_args.args[1:] == (1, "twitter", date(2026, 3, 10), 1250, 50)
        assert latest.await_args.kwargs["before"] == date(2026, 3, 10)
        assert conn.last_synced_at is not None

    @pytest.mark.asyncio
    async def test_first_snapshot_has_no_delta(self):
        upsert = AsyncMock()
        with (
            patch(f"{SVC}.list_active_connections", AsyncMock(return_value=[_connection()])),
            patch(f"{SVC}.get_valid_access_token", AsyncMock(return_value="token")),
            patch(f"{SVC}.get_adapter", MagicMock(return_value=_adapter())),
            patch(f"{SVC}.latest_follower_count", AsyncMock(return_value=None)),
            patch(f"{SVC}.upsert_snapshot", upsert),
            patch(f"{SVC}.log_fetch", AsyncMock()),
        ):
            await collect_follower_snapshots(AsyncMock(), date(2026, 3, 10))

        assert upsert.await_args.args[-1] is None

    @pytest.mark.asyncio
    async def test_expired_connection_logged(self):
        log_fetch = AsyncMock()
        with (
            patch(f"{SVC}.list_active_connections", AsyncMock(return_value=[_connection("threads")])),
            patch(
                f"{SVC}.get_valid_access_token",
                AsyncMock(side_effect=CredentialError("threads", "threads token expired")),
            ),
            patch(f"{SVC}.upsert_snapshot", AsyncMock()) as upsert,
            patch(f"{SVC}.log_fetch", log_fetch),
        ):
            summary = await collect_follower_snapshots(AsyncMock(), date(2026, 3, 10))

        assert summary.failed == 1
        upsert.assert_not_awaited()
        assert log_fetch.await_args.kwargs["fetch_type"] == "follower_stats"
        assert log_fetch.await_args.kwargs["api_calls_used"] == 0


class TestCleanup:
    @pytest.mark.asyncio
    async def test_uses_retention_window(self, monkeypatch):
        from creatorpulse.core.config import settings

        monkeypatch.setattr(settings, "fetch_log_retention_days", 30)
        delete = AsyncMock(return_value=7)
        with patch(f"{SVC}.delete_fetch_logs_before", delete):
            deleted = await cleanup_fetch_logs(AsyncMock(), NOW)

        assert deleted == 7
        assert delete.await_args.args[1] == NOW - timedelta(days=30)
