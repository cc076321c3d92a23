"""Per-platform constants. Every table must cover every Platform."""

from creatorpulse.adapters.types import Platform

PLATFORM_CHAR_LIMITS: dict[Platform, int] = {
    Platform.TWITTER: 280,
    Platform.LINKEDIN: 3000,
    Platform.THREADS: 500,
}

DEFAULT_CHAR_LIMIT = 280

# Extension -> MIME type for media uploads; unknown extensions fall back to JPEG
MIME_TYPES: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}
DEFAULT_MIME_TYPE = "image/jpeg"


def ensure_total(table: dict, name: str) -> None:
    """Fail at import time if a per-platform table misses a platform."""
    missing = set(Platform) - set(table)
    if missing:
        raise RuntimeError(f"{name} has no entry for: {', '.join(sorted(missing))}")


ensure_total(PLATFORM_CHAR_LIMITS, "PLATFORM_CHAR_LIMITS")


def char_limit_for(platform: Platform | str) -> int:
    return PLATFORM_CHAR_LIMITS[Platform(platform)]


def char_limit_for_platforms(platforms: list[Platform | str]) -> int:
    """Strictest limit across a set of targets (used when composing cross-posts)."""
    if not platforms:
        return DEFAULT_CHAR_LIMIT
    return min(char_limit_for(p) for p in platforms)


def mime_type_for(path: str) -> str:
    ext = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return MIME_TYPES.get(ext, DEFAULT_MIME_TYPE)
