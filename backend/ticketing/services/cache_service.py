"""
Redis caching service for event listings.

CACHING STRATEGY
================

What we cache:
  - Event listing responses (JSON-serialized), one entry per filter combination
  - Cache key pattern: "events:list:<sorted query string>"

Why:
  - Event listings are the most frequent read operation
  - Listing availability is informational; a few seconds of staleness is fine

Invalidation strategy:
  - On booking or cancellation: delete all event list keys (availability changed)
  - On event create/update/delete: delete all event list keys
  - TTL-based expiry as safety net (5 minutes)

  All event list keys start with "events:list:" so we can SCAN and delete them.

What we never cache:
  - Anything admission reads. Booked quantity and taken seats are recomputed
    from the database on every booking attempt; a cached count would let
    two requests sell the same last ticket.

Redis is optional. When disabled or unreachable every call degrades to a
miss / no-op and the database answers.
"""

import json
import time
from typing import Optional
from urllib.parse import urlencode

import redis.asyncio as redis
from redis.exceptions import RedisError
from ticketing.core.config import get_settings
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

EVENT_LIST_PREFIX = "events:list:"

_redis_client: Optional[redis.Redis] = None
_last_failure: Optional[float] = None

# After a failed connect, skip Redis for this long instead of paying the
# connect timeout on every listing request.
RECONNECT_BACKOFF_SECONDS = 30.0


async def get_redis() -> Optional[redis.Redis]:
    """Shared Redis client, or None when disabled or recently unreachable."""
    global _redis_client, _last_failure

    if not settings.REDIS_ENABLED:
        return None
    if _redis_client is not None:
        return _redis_client
    if _last_failure is not None and time.monotonic() - _last_failure < RECONNECT_BACKOFF_SECONDS:
        return None

    client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.error("redis_connection_failed", error=str(e))
        _last_failure = time.monotonic()
        await client.aclose()
        return None

    logger.info("redis_connected", url=settings.REDIS_URL)
    _redis_client, _last_failure = client, None
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def make_event_list_key(filters: dict) -> str:
    params = sorted((key, str(value)) for key, value in filters.items() if value is not None)
    return EVENT_LIST_PREFIX + urlencode(params)


async def get_cached_events(filters: dict) -> Optional[list]:
    """Retrieve a cached event listing."""
    client = await get_redis()
    if not client:
        return None

    key = make_event_list_key(filters)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=data is not None)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_events(filters: dict, data: list) -> None:
    """Cache an event listing with TTL."""
    client = await get_redis()
    if not client:
        return

    key = make_event_list_key(filters)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_event_cache() -> None:
    """
    Invalidate all cached event listings.
    Uses SCAN to find and delete all keys matching the prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{EVENT_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
