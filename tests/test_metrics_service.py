"""Tests for metric events: derived fields fixed at write time."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from creatorpulse.services.metrics import (
    MetricEventData,
    compute_engagement_rate,
    insert_metric_event,
    latest_observations,
)

PUBLISHED = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


class TestEngagementRate:
    @pytest.mark.parametrize(
        "likes,replies,reposts",
        [(0, 0, 0), (5, 0, 0), (10, 3, 2), (None, None, None)],
    )
    def test_zero_impressions_is_none(self, likes, replies, reposts):
        assert compute_engagement_rate(0, likes, replies, reposts) is None

    def test_missing_impressions_is_none(self):
        assert compute_engagement_rate(None, 1, 1, 1) is None

    def test_rate(self):
        assert compute_engagement_rate(200, 10, 5, 5) == pytest.approx(0.1)

    def test_measured_zero_engagement_is_zero(self):
        assert compute_engagement_rate(100, 0, None, 0) == 0.0


class TestInsertMetricEvent:
    @pytest.mark.asyncio
    async def test_derived_fields(self):
        db = AsyncMock()
        db.add = MagicMock()
        data = MetricEventData(
            post_publication_id=3,
            user_id=1,
            platform="twitter",
            published_at=PUBLISHED,
            impressions=1000,
            likes=30,
            replies=10,
            reposts=10,
            observed_at=PUBLISHED + timedelta(hours=5, minutes=59),
        )

        event = await insert_metric_event(db, data)

        assert event.engagement_rate == pytest.approx(0.05)
        assert event.hours_since_publish == 5
        db.add.assert_called_once_with(event)
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_zero_impressions_stores_null_rate(self):
        db = AsyncMock()
        db.add = MagicMock()
        data = MetricEventData(
            post_publication_id=3,
            user_id=1,
            platform="threads",
            published_at=PUBLISHED,
            impressions=0,
            likes=4,
            observed_at=PUBLISHED + timedelta(minutes=20),
        )

        event = await insert_metric_event(db, data)

        assert event.engagement_rate is None
        assert event.hours_since_publish == 0


class TestLatestObservations:
    @pytest.mark.asyncio
    async def test_empty_input_does_not_query(self):
        db = AsyncMock()
        assert await latest_observations(db, []) == {}
        db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_maps_publication_to_timestamp(self):
        db = AsyncMock()
        result = MagicMock()
        result.all.return_value = [(1, PUBLISHED), (2, PUBLISHED + timedelta(hours=1))]
        db.execute = AsyncMock(return_value=result)

        observed = await latest_observations(db, [1, 2, 3])

        assert observed == {1: PUBLISHED, 2: PUBLISHED + timedelta(hours=1)}
