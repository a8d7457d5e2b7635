"""Optional Redis connection used as a cache for tenant lookups.

Redis is not required: with REDIS_URL empty every lookup goes straight to
the master database.
"""

from __future__ import annotations

import redis.asyncio as aioredis

from src.app.config import get_settings

# ── Module-level Redis pool (lazy init) ─────────────────────────────────────

_redis_pool: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis | None:
    """Get or create the Redis connection pool singleton, None when disabled."""
    global _redis_pool
    settings = get_settings()
    if not settings.REDIS_URL:
        return None
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None
