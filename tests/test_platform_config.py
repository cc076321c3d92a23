"""Tests for per-platform tables and the adapter registry."""

import pytest

from creatorpulse.adapters import get_adapter
from creatorpulse.adapters.linkedin import LinkedInAdapter
from creatorpulse.adapters.platform_config import (
    PLATFORM_CHAR_LIMITS,
    char_limit_for,
    char_limit_for_platforms,
    ensure_total,
    mime_type_for,
)
from creatorpulse.adapters.types import Platform


def test_char_limits():
    assert char_limit_for("twitter") == 280
    assert char_limit_for("linkedin") == 3000
    assert char_limit_for("threads") == 500


def test_strictest_limit_across_targets():
    assert char_limit_for_platforms(["linkedin", "threads"]) == 500
    assert char_limit_for_platforms([]) == 280


@pytest.mark.parametrize(
    "path,expected",
    [
        ("1/abc.jpg", "image/jpeg"),
        ("1/abc.JPEG", "image/jpeg"),
        ("1/abc.png", "image/png"),
        ("1/abc.gif", "image/gif"),
        ("1/abc.webp", "image/webp"),
        ("1/abc.bmp", "image/jpeg"),
        ("1/noext", "image/jpeg"),
    ],
)
def test_mime_type_for(path, expected):
    assert mime_type_for(path) == expected


def test_ensure_total_reports_missing_platform():
    partial = {Platform.TWITTER: 1}
    with pytest.raises(RuntimeError, match="linkedin"):
        ensure_total(partial, "partial table")


def test_tables_are_total():
    ensure_total(PLATFORM_CHAR_LIMITS, "PLATFORM_CHAR_LIMITS")


def test_get_adapter():
    assert isinstance(get_adapter("linkedin"), LinkedInAdapter)
    with pytest.raises(ValueError):
        get_adapter("myspace")
