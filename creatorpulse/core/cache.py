"""Redis cache for analytics responses.

Cache failures are logged and treated as a miss; they never fail a request.
"""

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from creatorpulse.core.config import settings

logger = logging.getLogger(__name__)

_redis: aioredis.Redis | None = None


async def _get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    return _redis


def analytics_key(user_id: int, view: str, *params: Any) -> str:
    """Key for one user's analytics view, e.g. ``analytics:7:overview:30:twitter``."""
    parts = [str(p) if p is not None else "all" for p in params]
    return ":".join(["analytics", str(user_id), view, *parts])


async def cache_get_json(key: str) -> Any | None:
    try:
        r = await _get_redis()
        raw = await r.get(key)
    except Exception:
        logger.exception("Cache get failed for key=%s", key)
        return None
    return json.loads(raw) if raw is not None else None


async def cache_set_json(key: str, value: Any, ttl: int | None = None) -> None:
    try:
        r = await _get_redis()
        await r.set(key, json.dumps(value, default=str), ex=ttl or settings.cache_dashboard_ttl)
    except Exception:
        logger.exception("Cache set failed for key=%s", key)


async def invalidate_user_analytics(user_id: int) -> None:
    """Drop every cached analytics view of one user."""
    pattern = f"analytics:{user_id}:*"
    try:
        r = await _get_redis()
        cursor = 0
        while True:
            cursor, keys = await r.scan(cursor, match=pattern, count=100)
            if keys:
                await r.delete(*keys)
            if cursor == 0:
                break
    except Exception:
        logger.exception("Cache invalidation failed for pattern=%s", pattern)
