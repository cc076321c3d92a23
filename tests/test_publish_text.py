"""Tests for build_publish_text: tag suffixes within a platform character limit."""

import pytest

from creatorpulse.adapters.platform_config import char_limit_for
from creatorpulse.services.publishing import build_publish_text


class TestBuildPublishText:
    def test_tag_fills_limit_exactly(self):
        text = build_publish_text("a" * 273, ["react"], 280)
        assert text == "a" * 273 + " #react"
        assert len(text) == 280

    def test_no_tags_fit_returns_body(self):
        assert build_publish_text("a" * 280, ["react", "nextjs"], 280) == "a" * 280

    def test_body_over_limit_is_not_truncated(self):
        body = "a" * 300
        assert build_publish_text(body, ["react"], 280) == body

    def test_empty_tags(self):
        assert build_publish_text("hello", [], 280) == "hello"

    def test_all_tags_fit(self):
        assert build_publish_text("hello", ["a", "b"], 280) == "hello #a #b"

    def test_trailing_tags_dropped_first(self):
        # " #one" and " #two" fit (10 chars); " #three" would not
        text = build_publish_text("x" * 10, ["one", "two", "three"], 20)
        assert text == "x" * 10 + " #one #two"

    def test_later_short_tag_not_used_after_drop(self):
        # Tags are a prefix: once one is dropped, everything after it goes too
        text = build_publish_text("x" * 10, ["toolongtag", "a"], 16)
        assert text == "x" * 10

    @pytest.mark.parametrize("limit", [0, 5, 12, 18, 25, 280])
    def test_never_exceeds_limit_unless_body_does(self, limit):
        body = "body text"
        text = build_publish_text(body, ["python", "fastapi", "x"], limit)
        assert text.startswith(body)
        assert len(text) <= max(limit, len(body))

    def test_uses_platform_limits(self):
        body = "a" * 2990
        assert build_publish_text(body, ["python"], char_limit_for("linkedin")) == body + " #python"
        assert build_publish_text(body, ["python"], char_limit_for("twitter")) == body
