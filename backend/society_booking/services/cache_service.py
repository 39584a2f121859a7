"""
Redis caching for the resource catalog.

CACHING STRATEGY
================

What we cache:
  - The active resource listing (JSON-serialized), key "resources:active".

Why:
  - Every booking screen starts by listing amenities; the catalog changes
    only on rare administrative edits.

Invalidation:
  - Any catalog create/update deletes the key.
  - TTL-based expiry as a safety net (REDIS_CACHE_TTL).

What we never cache:
  - Reservation rows or availability. Admission and availability must see the
    ledger as committed, a stale read there means a wrong answer.

Cache failures are logged and ignored; the database is always the fallback.
"""

import json
from typing import Optional

import redis.asyncio as redis

from society_booking.core.config import get_settings
from society_booking.core.logging import get_logger
from society_booking.core.metrics import record_cache_operation
from society_booking.infrastructure.redis_client import get_redis

logger = get_logger(__name__)

ACTIVE_RESOURCES_KEY = "resources:active"


async def get_cached_resources() -> Optional[list[dict]]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(ACTIVE_RESOURCES_KEY)
    except redis.RedisError as e:
        logger.error("cache_get_error", key=ACTIVE_RESOURCES_KEY, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data is None:
        logger.debug("cache_miss", key=ACTIVE_RESOURCES_KEY)
        return None
    logger.debug("cache_hit", key=ACTIVE_RESOURCES_KEY)
    return json.loads(data)


async def set_cached_resources(resources: list[dict]) -> None:
    client = await get_redis()
    if not client:
        return

    ttl = get_settings().REDIS_CACHE_TTL
    try:
        await client.setex(ACTIVE_RESOURCES_KEY, ttl, json.dumps(resources, default=str))
        record_cache_operation("set", hit=True)
        logger.debug("cache_set", key=ACTIVE_RESOURCES_KEY, ttl=ttl)
    except redis.RedisError as e:
        logger.error("cache_set_error", key=ACTIVE_RESOURCES_KEY, error=str(e))


async def invalidate_resource_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        deleted = await client.delete(ACTIVE_RESOURCES_KEY)
        logger.info("cache_invalidated", key=ACTIVE_RESOURCES_KEY, keys_deleted=deleted)
    except redis.RedisError as e:
        logger.error("cache_invalidation_error", key=ACTIVE_RESOURCES_KEY, error=str(e))


async def get_cache_stats() -> dict:
    """Redis keyspace statistics for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
    except redis.RedisError as e:
        return {"status": "error", "error": str(e)}

    hits = info.get("keyspace_hits", 0)
    misses = info.get("keyspace_misses", 0)
    return {
        "status": "connected",
        "hits": hits,
        "misses": misses,
        "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
    }
