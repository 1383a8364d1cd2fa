"""
Factory for the process-wide connection manager and storage engines.

ARCHITECTURE:
=============
One ConnectionManager owns the Redis connection. The cache and session
engines share it and each keep their own in-memory fallback map:

1. PRIMARY: Redis
   - Shared across application instances
   - Native TTL management
   - Automatic reconnect on transient errors

2. FALLBACK: In-Memory
   - Used whenever Redis is not available
   - Zero external dependencies
   - Periodic reaper removes expired entries

Startup never fails because of Redis: a missing REDIS_URL or a failed
connection leaves the engines on their fallback maps.
"""

import logging
from typing import Optional

from app.storage.cache import CacheStore
from app.storage.primary import ConnectionManager
from app.storage.sessions import SessionStore

logger = logging.getLogger(__name__)

_connection_manager: Optional[ConnectionManager] = None
_cache_store: Optional[CacheStore] = None
_session_store: Optional[SessionStore] = None


def get_connection_manager() -> ConnectionManager:
    """Get the global connection manager (created disconnected on first call)."""
    global _connection_manager

    if _connection_manager is None:
        _connection_manager = ConnectionManager()

    return _connection_manager


def get_cache_store() -> CacheStore:
    """Get the global cache engine."""
    global _cache_store

    if _cache_store is None:
        _cache_store = CacheStore(get_connection_manager())

    return _cache_store


def get_session_store() -> SessionStore:
    """Get the global session engine."""
    global _session_store

    if _session_store is None:
        _session_store = SessionStore(get_connection_manager())

    return _session_store


async def init_storage() -> bool:
    """Connect to Redis (if configured) and start the fallback reapers.

    Returns:
        True if Redis is available after startup
    """
    connection = get_connection_manager()
    cache = get_cache_store()
    sessions = get_session_store()

    connected = await connection.connect()
    if connected:
        logger.info("[SUCCESS] Session storage: Redis (PRIMARY)")
    else:
        logger.warning("[FALLBACK ACTIVATED] Session storage: memory")
        logger.warning("Sessions and cache entries will not persist across restarts")

    cache.start_reaper()
    sessions.start_reaper()
    return connected


async def close_storage() -> None:
    """Stop the reapers and close the Redis connection."""
    if _cache_store is not None:
        await _cache_store.stop_reaper()
    if _session_store is not None:
        await _session_store.stop_reaper()
    if _connection_manager is not None:
        await _connection_manager.close()


def reset_storage() -> None:
    """Forget the global instances (tests only; does not close anything)."""
    global _connection_manager, _cache_store, _session_store

    _connection_manager = None
    _cache_store = None
    _session_store = None
