"""
Admin endpoints for the cache & session service.

Cache inspection and invalidation plus an explicit Redis reconnect.
All routes require the X-API-Key header.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.api.dependencies import check_api_key, get_cache, get_connection
from app.storage import CacheStore, ConnectionManager

router = APIRouter(dependencies=[Depends(check_api_key)])
logger = logging.getLogger(__name__)


@router.get("/cache")
async def cache_stats(cache: CacheStore = Depends(get_cache)) -> Dict[str, Any]:
    """Get cache statistics.

    Returns:
        Backend in use, fallback map size and Redis key count (when connected)
    """
    return await cache.stats()


@router.delete("/cache")
async def flush_cache(cache: CacheStore = Depends(get_cache)) -> Dict[str, Any]:
    """Clear every cache entry from both backends."""
    await cache.flush()
    return {"status": "success", "message": "Cache flushed"}


@router.delete("/cache/{pattern:path}")
async def delete_cache_pattern(
    pattern: str, cache: CacheStore = Depends(get_cache)
) -> Dict[str, Any]:
    """Delete cache keys matching a glob pattern (``*`` wildcard), e.g. ``account:*``."""
    deleted = await cache.delete_by_pattern(pattern)
    logger.info(f"Admin deleted {deleted} cache keys matching '{pattern}'")
    return {"status": "success", "pattern": pattern, "deleted": deleted}


@router.post("/redis/reconnect")
async def reconnect_redis(
    connection: ConnectionManager = Depends(get_connection),
) -> Dict[str, Any]:
    """Explicitly reconnect to Redis (the only way out of the failed state)."""
    connected = await connection.reconnect()
    return {"status": "success" if connected else "failed", "redis": connection.info()}
