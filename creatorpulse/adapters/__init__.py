"""Platform adapters, one per Platform."""

from creatorpulse.adapters.base import PlatformAdapter
from creatorpulse.adapters.linkedin import LinkedInAdapter
from creatorpulse.adapters.platform_config import ensure_total
from creatorpulse.adapters.threads import ThreadsAdapter
from creatorpulse.adapters.twitter import TwitterAdapter
from creatorpulse.adapters.types import (
    Platform,
    PlatformPostResult,
    PostPayload,
    RawMetrics,
    TokenPair,
)

_ADAPTERS: dict[Platform, type[PlatformAdapter]] = {
    Platform.TWITTER: TwitterAdapter,
    Platform.LINKEDIN: LinkedInAdapter,
    Platform.THREADS: ThreadsAdapter,
}
ensure_total(_ADAPTERS, "adapter registry")


def get_adapter(platform: Platform | str) -> PlatformAdapter:
    """Return a fresh adapter. Raises ValueError for an unknown platform string."""
    return _ADAPTERS[Platform(platform)]()


__all__ = [
    "Platform",
    "PlatformAdapter",
    "PlatformPostResult",
    "PostPayload",
    "RawMetrics",
    "TokenPair",
    "get_adapter",
]
