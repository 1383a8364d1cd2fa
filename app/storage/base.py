"""
Shared routing logic for the Redis-or-memory engines.

Both the cache and the session engine ask the connection manager whether
Redis is usable, run the command against Redis with a bounded timeout, and
fall back to their own in-memory map otherwise. This module holds that
decision so the two engines behave identically.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from app.exceptions import StoreConnectionError
from app.metrics import (
    store_fallback_entries,
    store_operations_total,
    store_reaped_entries_total,
    store_remote_latency_seconds,
)
from app.settings import settings
from app.storage.codec import Codec
from app.storage.fallback import FallbackMap
from app.storage.primary import ConnectionManager
from app.storage.reaper import PeriodicReaper
from app.storage.utils import escape_redis_glob

logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKEND_REDIS = "redis"
BACKEND_MEMORY = "memory"


class DualBackendStore:
    """Base class for engines backed by Redis with an in-memory fallback."""

    engine = "store"

    def __init__(
        self,
        connection: ConnectionManager,
        namespace: str,
        codec: Codec,
        cleanup_interval: float,
        clock: Callable[[], float] = time.time,
        key_prefix: Optional[str] = None,
    ):
        """
        Args:
            connection: Shared connection manager (availability + client)
            namespace: Component sub-prefix, e.g. ``"cache:"``
            codec: Serializer for stored values
            cleanup_interval: Seconds between fallback reaper sweeps
            clock: Epoch-seconds clock used for fallback expiry
            key_prefix: Literal prefix for all keys (default from settings)
        """
        self._connection = connection
        self._codec = codec
        self._clock = clock
        root = settings.key_prefix if key_prefix is None else key_prefix
        self._prefix = root + namespace
        self._fallback = FallbackMap(clock=clock)
        self._reaper = PeriodicReaper(self.engine, cleanup_interval, self.purge_expired)

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def backend(self) -> str:
        return BACKEND_REDIS if self._connection.is_available() else BACKEND_MEMORY

    @property
    def fallback_size(self) -> int:
        return len(self._fallback)

    def _key(self, key: str) -> str:
        return self._prefix + key

    def _remote(self) -> Optional[Any]:
        """Redis client if Redis is currently usable, else None."""
        if self._connection.is_available():
            return self._connection.client()
        return None

    async def _execute(self, operation: str, command: Awaitable[T]) -> T:
        """Await a Redis command within the command timeout.

        Failures are counted and reported to the connection manager, then
        re-raised as StoreConnectionError so the caller can fall back.
        """
        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(command, timeout=self._connection.command_timeout)
        except Exception as e:
            store_operations_total.labels(
                engine=self.engine, backend=BACKEND_REDIS, operation=operation, status="error"
            ).inc()
            self._connection.report_error(e)
            raise StoreConnectionError(f"Redis {operation} failed: {e!r}") from e

        store_remote_latency_seconds.labels(engine=self.engine, operation=operation).observe(
            time.perf_counter() - start_time
        )
        store_operations_total.labels(
            engine=self.engine, backend=BACKEND_REDIS, operation=operation, status="success"
        ).inc()
        return result

    async def _scan(self, client: Any, pattern: str) -> List[str]:
        """Collect keys matching ``pattern`` with SCAN (non-blocking on the server).

        ``pattern`` uses ``*`` as its only wildcard, as in the fallback map.
        """
        match = escape_redis_glob(pattern)

        async def collect() -> List[str]:
            return [key async for key in client.scan_iter(match=match, count=100)]

        return await self._execute("scan", collect())

    async def _delete_remote_matching(self, client: Any, pattern: str) -> int:
        keys = await self._scan(client, pattern)
        if not keys:
            return 0
        return await self._execute("delete", client.delete(*keys))

    def _record_fallback(self, operation: str) -> None:
        store_operations_total.labels(
            engine=self.engine, backend=BACKEND_MEMORY, operation=operation, status="success"
        ).inc()
        store_fallback_entries.labels(engine=self.engine).set(len(self._fallback))

    # ── Fallback reaper ──────────────────────────────────────────

    def purge_expired(self) -> int:
        """Remove expired fallback entries. Returns how many were removed."""
        removed = self._fallback.purge_expired()
        if removed:
            store_reaped_entries_total.labels(engine=self.engine).inc(removed)
        store_fallback_entries.labels(engine=self.engine).set(len(self._fallback))
        return removed

    def start_reaper(self) -> None:
        self._reaper.start()

    async def stop_reaper(self) -> None:
        await self._reaper.stop()
