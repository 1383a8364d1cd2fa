"""
Storage module for caching and session management.

Architecture:
- primary/: Redis connection manager (state, TLS, reconnect, health)
- fallback/: In-memory key map with lazy expiry
- base.py: Redis-or-memory routing shared by both engines
- cache.py / sessions.py: the cache and session engines
- factory.py: Process-wide instances and startup/shutdown
"""

from app.storage.base import BACKEND_MEMORY, BACKEND_REDIS, DualBackendStore
from app.storage.cache import CACHE_KEYS, NOT_PRODUCED, CacheStore, build_key
from app.storage.codec import Codec, JSONCodec, SessionRecordCodec
from app.storage.factory import (
    close_storage,
    get_cache_store,
    get_connection_manager,
    get_session_store,
    init_storage,
)
from app.storage.fallback import FallbackMap
from app.storage.models import CacheEntry, SessionRecord
from app.storage.primary import ConnectionConfig, ConnectionManager, ConnectionState
from app.storage.reaper import PeriodicReaper
from app.storage.sessions import SessionStore, generate_session_token
from app.storage.utils import escape_redis_glob, glob_to_regex, mask_session_id

__all__ = [
    "BACKEND_MEMORY",
    "BACKEND_REDIS",
    "CACHE_KEYS",
    "CacheEntry",
    "CacheStore",
    "Codec",
    "ConnectionConfig",
    "ConnectionManager",
    "ConnectionState",
    "DualBackendStore",
    "FallbackMap",
    "JSONCodec",
    "NOT_PRODUCED",
    "PeriodicReaper",
    "SessionRecord",
    "SessionRecordCodec",
    "SessionStore",
    "build_key",
    "close_storage",
    "escape_redis_glob",
    "generate_session_token",
    "get_cache_store",
    "get_connection_manager",
    "get_session_store",
    "glob_to_regex",
    "init_storage",
    "mask_session_id",
]
