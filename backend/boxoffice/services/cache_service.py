"""
Redis caching for display-only availability reads.

CACHING STRATEGY
================

What we cache:
  - Availability per ticket type for browse pages
  - Cache key pattern: "availability:{ticket_type_id}"

Why:
  - Availability is the hottest read during an on-sale
  - Display reads may be slightly stale; reserve() never reads the cache,
    it decides against the ledger row itself

Invalidation strategy:
  - Hold create / commit / release and sweeper expiry delete the keys of
    the ticket types they touched
  - Short TTL (REDIS_CACHE_TTL) as safety net

Failure mode:
  - Redis is advisory only. Every error is logged and swallowed, and the
    caller falls through to the database.
"""

from typing import Iterable, Optional

import redis.asyncio as redis

from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_cache_operation, redis_connection_errors

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            redis_connection_errors.inc()
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _make_availability_key(ticket_type_id: int) -> str:
    return f"availability:{ticket_type_id}"


async def get_cached_availability(ticket_type_id: int) -> Optional[int]:
    client = await get_redis()
    if not client:
        return None

    key = _make_availability_key(ticket_type_id)
    try:
        data = await client.get(key)
        record_cache_operation("get", data is not None)
        if data is not None:
            return int(data)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_availability(ticket_type_id: int, available: int) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_availability_key(ticket_type_id)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, available)
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_availability(ticket_type_ids: Iterable[int | None]) -> None:
    client = await get_redis()
    if not client:
        return

    keys = [_make_availability_key(tt_id) for tt_id in set(ticket_type_ids) if tt_id is not None]
    if not keys:
        return
    try:
        await client.delete(*keys)
        logger.debug("cache_invalidated", keys=keys)
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
