"""
Cache engine: namespaced key-value cache with TTL.

Reads and writes go to Redis while it is available and to the in-memory
fallback map otherwise. A failing Redis command never fails the call: the
error is logged and the operation is served by the fallback instead.

Usage:
    cache = CacheStore(connection)
    await cache.set("account:42", {"name": "Ada"}, ttl=120)
    account = await cache.get("account:42")
    await cache.delete_by_pattern("account:*")
"""

import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from starlette.middleware import Middleware

from app.exceptions import StoreConnectionError
from app.settings import settings
from app.storage.base import DualBackendStore
from app.storage.codec import Codec, JSONCodec
from app.storage.primary import ConnectionManager

logger = logging.getLogger(__name__)

DEFAULT_TTL = 60  # seconds
CACHE_NAMESPACE = "cache:"

# Sub-namespaces for common cached objects
CACHE_KEYS = {
    "ACCOUNT_INFO": "account:",
    "PROJECT_LIST": "projects:",
    "USER_BALANCE": "balance:",
    "API_RESPONSE": "api:",
}

Producer = Callable[[], Union[Any, Awaitable[Any]]]

# Returned by a get_or_set producer that has nothing to cache
NOT_PRODUCED = object()


def build_key(namespace: str, key: str) -> str:
    """Join a CACHE_KEYS sub-namespace and a caller key."""
    return namespace + key


class CacheStore(DualBackendStore):
    """Redis cache with transparent in-memory fallback."""

    engine = "cache"

    def __init__(
        self,
        connection: ConnectionManager,
        codec: Optional[Codec] = None,
        default_ttl: Optional[int] = None,
        cleanup_interval: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        key_prefix: Optional[str] = None,
    ):
        super().__init__(
            connection,
            namespace=CACHE_NAMESPACE,
            codec=codec or JSONCodec(),
            cleanup_interval=cleanup_interval or settings.cache.cleanup_interval_seconds,
            clock=clock,
            key_prefix=key_prefix,
        )
        self.default_ttl = default_ttl or settings.cache.default_ttl_seconds

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Cache ``value`` for ``ttl`` seconds. Always returns True.

        Raises:
            SerializationError: If the codec cannot encode ``value``
        """
        ttl = self.default_ttl if ttl is None else ttl
        full_key = self._key(key)
        serialized = self._codec.dumps(value)

        client = self._remote()
        if client is not None:
            try:
                await self._execute("set", client.set(full_key, serialized, ex=ttl))
                return True
            except StoreConnectionError as e:
                logger.error(f"Redis cache write failed, using memory: {e}")

        self._fallback.set(full_key, serialized, ttl)
        self._record_fallback("set")
        return True

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired.

        Raises:
            SerializationError: If the stored payload cannot be decoded
        """
        data = await self._read(key)
        if data is None:
            return None
        return self._codec.loads(data)

    async def _read(self, key: str) -> Optional[str]:
        """Serialized payload for ``key``, or None if absent or expired."""
        full_key = self._key(key)

        client = self._remote()
        if client is not None:
            try:
                return await self._execute("get", client.get(full_key))
            except StoreConnectionError as e:
                logger.error(f"Redis cache read failed, using memory: {e}")

        self._record_fallback("get")
        return self._fallback.get(full_key)

    async def delete(self, key: str) -> bool:
        """Delete ``key`` from Redis (when available) and from memory."""
        full_key = self._key(key)

        client = self._remote()
        if client is not None:
            try:
                await self._execute("delete", client.delete(full_key))
            except StoreConnectionError as e:
                logger.error(f"Redis cache delete failed: {e}")

        self._fallback.delete(full_key)
        self._record_fallback("delete")
        return True

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete every key matching the glob ``pattern``.

        ``*`` is the only wildcard on both backends; ``?`` and brackets match
        literally.

        Returns:
            Keys removed from Redis plus keys removed from memory. A key
            present in both backends counts twice.
        """
        full_pattern = self._key(pattern)
        count = 0

        client = self._remote()
        if client is not None:
            try:
                count = await self._delete_remote_matching(client, full_pattern)
            except StoreConnectionError as e:
                logger.error(f"Redis pattern delete failed: {e}")

        count += self._fallback.delete_matching(full_pattern)
        self._record_fallback("delete_pattern")
        return count

    async def exists(self, key: str) -> bool:
        full_key = self._key(key)

        client = self._remote()
        if client is not None:
            try:
                return await self._execute("exists", client.exists(full_key)) == 1
            except StoreConnectionError as e:
                logger.error(f"Redis exists check failed, using memory: {e}")

        self._record_fallback("exists")
        return self._fallback.get(full_key) is not None

    async def get_or_set(
        self, key: str, producer: Producer, ttl: Optional[int] = None
    ) -> Any:
        """Return the cached value or compute, cache and return it.

        ``producer`` may be a plain or a coroutine function. Returning
        NOT_PRODUCED means nothing was produced: nothing is cached and None
        is returned. A None result is a value and is cached (JSON ``null``),
        so later calls hit the cache. Concurrent misses for the same key each
        call ``producer``; there is no single-flight lock.

        Raises:
            Exception: Whatever ``producer`` raises
        """
        cached = await self._read(key)
        if cached is not None:
            return self._codec.loads(cached)

        data = producer()
        if inspect.isawaitable(data):
            data = await data

        if data is NOT_PRODUCED:
            return None

        await self.set(key, data, ttl)
        return data

    def response_caching_filter(
        self, prefix: str, ttl: Optional[int] = None, path_prefix: str = "/"
    ) -> Middleware:
        """Build the GET response caching middleware bound to this cache.

        Args:
            prefix: Cache key prefix; the request path is appended
            ttl: TTL for stored responses (default: cache default TTL)
            path_prefix: Only requests under this path are cached

        Returns:
            Starlette ``Middleware`` for ``FastAPI(middleware=[...])``
        """
        from app.middleware.response_cache import ResponseCacheMiddleware

        return Middleware(
            ResponseCacheMiddleware,
            cache=self,
            key_prefix=prefix,
            ttl=self.default_ttl if ttl is None else ttl,
            path_prefix=path_prefix,
        )

    async def stats(self) -> Dict[str, Any]:
        """Backend in use, fallback size and (when available) Redis key count."""
        stats: Dict[str, Any] = {
            "backend": self.backend,
            "fallback_size": self.fallback_size,
        }

        client = self._remote()
        if client is not None:
            try:
                stats["remote_keys"] = len(await self._scan(client, self._prefix + "*"))
            except StoreConnectionError as e:
                logger.error(f"Redis key count failed: {e}")
                stats["remote_keys"] = 0

        return stats

    async def flush(self) -> None:
        """Clear every cache key from both backends."""
        client = self._remote()
        if client is not None:
            try:
                await self._delete_remote_matching(client, self._prefix + "*")
            except StoreConnectionError as e:
                logger.error(f"Redis cache flush failed: {e}")

        self._fallback.clear()
        self._record_fallback("flush")
        logger.info("Cache flushed")
