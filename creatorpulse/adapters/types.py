"""Platform identity and the value types exchanged with platform adapters."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class Platform(StrEnum):
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    THREADS = "threads"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class PostPayload:
    text: str
    media_ids: list[str] = field(default_factory=list)
    author_id: str | None = None  # platform user id; LinkedIn/Threads need it


@dataclass(frozen=True)
class PlatformPostResult:
    platform_post_id: str
    platform_url: str
    published_at: datetime


@dataclass(frozen=True)
class RawMetrics:
    """Platform counts normalised to one shape. Missing counts stay None."""

    impressions: int | None = None
    unique_reach: int | None = None
    likes: int | None = None
    replies: int | None = None
    reposts: int | None = None
    quotes: int | None = None
    bookmarks: int | None = None
    clicks: int | None = None
    profile_visits: int | None = None
    follows_from_post: int | None = None
    video_plays: int | None = None
    video_watch_time_ms: int | None = None
    video_unique_viewers: int | None = None
    api_calls_used: int = 1
