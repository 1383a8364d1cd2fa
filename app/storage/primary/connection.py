"""
============================================================================
PRIMARY IMPLEMENTATION: Redis Connection Manager
============================================================================

Owns the lifecycle of the single Redis connection shared by the cache and
session engines.

FEATURES:
---------
* Config derivation: a fresh ConnectionConfig is built from the environment
  on every connection attempt
* Single-flight connect: concurrent callers share one in-flight attempt
  (the reconnect loop counts as one); close() detaches a pending attempt
* Fail closed: any connect error discards the client and returns False
* TLS: rediss:// scheme, REDIS_TLS flag or a custom CA bundle
* Reconnect: linear backoff (attempt x step, capped) for allow-listed
  transient errors, abandoned after a fixed number of attempts
* Health monitor: background PING drives state transitions
* Availability: is_available() is a pure read of state, never I/O

USAGE:
------
    manager = ConnectionManager()
    await manager.connect()
    if manager.is_available():
        client = manager.client()

See: app/storage/base.py for how engines route on is_available()
See: app/storage/factory.py for the process-wide instance
"""

import asyncio
import contextlib
import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis.asyncio as aioredis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ReadOnlyError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.exceptions import ConfigError
from app.metrics import store_connection_state, store_reconnect_attempts_total
from app.settings import RedisSettings

logger = logging.getLogger(__name__)

# Errors that trigger an automatic reconnect: read-only replica after a
# failover, reset/lost connections and timeouts.
RECONNECT_ERROR_TYPES = (
    ReadOnlyError,
    RedisConnectionError,
    ConnectionResetError,
    RedisTimeoutError,
    asyncio.TimeoutError,
)
RECONNECT_ERROR_MARKERS = ("READONLY", "ECONNRESET", "ETIMEDOUT")


def is_reconnectable(exc: BaseException) -> bool:
    """Return True if ``exc`` belongs to the reconnect allow-list."""
    if isinstance(exc, RECONNECT_ERROR_TYPES):
        return True
    message = str(exc)
    return any(marker in message for marker in RECONNECT_ERROR_MARKERS)


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


_STATE_CODES = {state: index for index, state in enumerate(ConnectionState)}


@dataclass(frozen=True)
class ConnectionConfig:
    """Connection parameters for one attempt. Immutable once built."""

    url: str
    tls_enabled: bool = False
    tls_ca: Optional[bytes] = None
    tls_reject_unauthorized: bool = False
    connect_timeout_ms: int = 10000
    command_timeout_ms: int = 5000
    max_retries_per_request: int = 3
    reconnect_max_attempts: int = 10
    reconnect_step_ms: int = 200
    reconnect_max_delay_ms: int = 5000
    health_check_interval: float = 30.0

    @property
    def connect_timeout(self) -> float:
        return self.connect_timeout_ms / 1000

    @property
    def command_timeout(self) -> float:
        return self.command_timeout_ms / 1000

    @property
    def connection_url(self) -> str:
        """URL handed to the client; TLS forces the rediss:// scheme."""
        if self.tls_enabled and self.url.startswith("redis://"):
            return "rediss://" + self.url[len("redis://"):]
        return self.url

    def backoff_delay(self, attempt: int) -> Optional[float]:
        """Delay in seconds before reconnect ``attempt`` (1-based).

        Returns:
            ``min(attempt * step, ceiling)``, or None once the attempt
            ceiling is exceeded
        """
        if attempt > self.reconnect_max_attempts:
            return None
        return min(attempt * self.reconnect_step_ms, self.reconnect_max_delay_ms) / 1000

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``redis.asyncio.from_url``."""
        kwargs: Dict[str, Any] = {
            "decode_responses": True,
            "socket_connect_timeout": self.connect_timeout,
            "socket_timeout": self.command_timeout,
            "retry": Retry(NoBackoff(), self.max_retries_per_request),
        }
        if self.tls_enabled:
            kwargs["ssl_cert_reqs"] = "required" if self.tls_reject_unauthorized else "none"
            kwargs["ssl_check_hostname"] = self.tls_reject_unauthorized
            if self.tls_ca is not None:
                kwargs["ssl_ca_data"] = self.tls_ca.decode("utf-8")
        return kwargs


def _tls_requested(redis_settings: RedisSettings) -> bool:
    return (
        redis_settings.url.startswith("rediss://")
        or redis_settings.tls
        or bool(redis_settings.tls_ca_path)
    )


def _resolve_tls(redis_settings: RedisSettings) -> Tuple[bool, Optional[bytes], bool]:
    """Resolve (enabled, ca_bytes, verify) from settings.

    An unreadable CA bundle degrades to unverified TLS instead of failing.
    """
    if not _tls_requested(redis_settings):
        return False, None, False

    ca_path = redis_settings.tls_ca_path
    if not ca_path:
        return True, None, False

    try:
        ca = Path(ca_path).read_bytes()
    except OSError as e:
        error = ConfigError(f"Cannot read Redis TLS CA '{ca_path}': {e}")
        logger.error(f"[FAILED] {error.message}. Continuing with unverified TLS")
        return True, None, False

    return True, ca, redis_settings.tls_reject_unauthorized


def build_connection_config(redis_settings: Optional[RedisSettings] = None) -> ConnectionConfig:
    """Derive a ConnectionConfig from the current environment."""
    redis_settings = redis_settings or RedisSettings()
    tls_enabled, tls_ca, verify = _resolve_tls(redis_settings)

    if tls_enabled:
        logger.info("Redis TLS enabled")

    return ConnectionConfig(
        url=redis_settings.url,
        tls_enabled=tls_enabled,
        tls_ca=tls_ca,
        tls_reject_unauthorized=verify,
        connect_timeout_ms=redis_settings.connect_timeout_ms,
        command_timeout_ms=redis_settings.command_timeout_ms,
        max_retries_per_request=redis_settings.max_retries_per_request,
        reconnect_max_attempts=redis_settings.reconnect_max_attempts,
        reconnect_step_ms=redis_settings.reconnect_step_ms,
        reconnect_max_delay_ms=redis_settings.reconnect_max_delay_ms,
        health_check_interval=redis_settings.health_check_interval_seconds,
    )


StateObserver = Callable[[ConnectionState], None]


class ConnectionManager:
    """Explicitly owned Redis connection with state, reconnect and health checks."""

    def __init__(
        self,
        config_factory: Callable[[], ConnectionConfig] = build_connection_config,
        client_factory: Optional[Callable[..., Any]] = None,
    ):
        """Initialize a disconnected manager.

        Args:
            config_factory: Builds the ConnectionConfig for each attempt
            client_factory: ``(url, **kwargs) -> client``; defaults to
                ``redis.asyncio.from_url``
        """
        self._config_factory = config_factory
        self._client_factory = client_factory
        self._config: Optional[ConnectionConfig] = None
        self._client: Optional[Any] = None
        self._state = ConnectionState.DISCONNECTED
        self._pending: Optional[asyncio.Task] = None
        # Bumped by close(); attempts started earlier must not publish a client
        self._generation = 0
        self._monitor_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._observers: List[StateObserver] = []
        store_connection_state.set(_STATE_CODES[self._state])

    # ── State ────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def command_timeout(self) -> float:
        if self._config is not None:
            return self._config.command_timeout
        return ConnectionConfig(url="").command_timeout

    def client(self) -> Optional[Any]:
        return self._client

    def is_available(self) -> bool:
        """True only when CONNECTED and a live client handle exists. No I/O."""
        return self._state is ConnectionState.CONNECTED and self._client is not None

    def add_observer(self, observer: StateObserver) -> None:
        """Register a callback invoked with every new state."""
        self._observers.append(observer)

    def _transition(self, state: ConnectionState) -> None:
        if state is self._state:
            return

        previous = self._state
        self._state = state
        store_connection_state.set(_STATE_CODES[state])
        logger.info(f"Redis connection state: {previous.value} -> {state.value}")

        for observer in list(self._observers):
            try:
                observer(state)
            except Exception as e:
                logger.error(f"Connection state observer failed: {e}")

    # ── Lifecycle ────────────────────────────────────────────────

    async def connect(self) -> bool:
        """Connect to Redis. Returns True if successful; never raises.

        Concurrent callers during an in-flight attempt await that same
        attempt and receive its result. While the reconnect loop is running
        it is the in-flight attempt.
        """
        if self.is_available():
            return True

        # asyncio.wait: a caller giving up must not cancel the loop, and a
        # loop cancelled by close() must not raise here
        if self._reconnect_task is not None and not self._reconnect_task.done():
            await asyncio.wait({self._reconnect_task})
            return self.is_available()

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._attempt_connect(self._generation))

        # Shielded: an abandoned caller must not cancel the shared attempt
        return await asyncio.shield(self._pending)

    async def _attempt_connect(self, generation: int) -> bool:
        task = asyncio.current_task()
        client = None
        try:
            if generation != self._generation:
                return False

            config = self._config_factory()
            if not config.url:
                logger.warning("REDIS_URL not configured, using in-memory fallback")
                return False

            self._transition(ConnectionState.CONNECTING)
            factory = self._client_factory or aioredis.from_url
            client = factory(config.connection_url, **config.client_kwargs())
            await asyncio.wait_for(client.ping(), timeout=config.connect_timeout)

            if generation != self._generation:
                logger.info("Redis connection closed during connect, discarding client")
                await self._close_client(client)
                return False

            self._config = config
            self._client = client
            self._transition(ConnectionState.CONNECTED)
            self._start_monitor()
            logger.info("[SUCCESS] Redis connection ready")
            return True
        except Exception as e:
            logger.error(f"[FAILED] Redis connection failed: {e}")
            if client is not None:
                await self._close_client(client)
            if generation == self._generation:
                self._client = None
                self._transition(ConnectionState.FAILED)
            return False
        finally:
            if self._pending is task:
                self._pending = None

    async def reconnect(self) -> bool:
        """Explicit reconnect request; the only way out of FAILED."""
        logger.info("Explicit Redis reconnect requested")
        await self.close()
        return await self.connect()

    async def close(self) -> None:
        """Gracefully close the connection. Idempotent.

        An attempt still in flight is detached: it closes its own client and
        leaves the state alone.
        """
        self._generation += 1
        self._pending = None
        await self._cancel(self._monitor_task)
        await self._cancel(self._reconnect_task)
        self._monitor_task = None
        self._reconnect_task = None

        client = self._client
        self._client = None
        if client is not None:
            await self._close_client(client)
            logger.info("Redis connection closed")

        self._transition(ConnectionState.DISCONNECTED)

    async def health_check(self) -> bool:
        """Actively PING Redis. For status reporting, not routing."""
        client = self._client
        if client is None:
            return False

        try:
            return bool(await asyncio.wait_for(client.ping(), timeout=self.command_timeout))
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    def info(self) -> Dict[str, Any]:
        """Connection summary for status endpoints."""
        if self._config is not None:
            tls = self._config.tls_enabled
        else:
            tls = _tls_requested(RedisSettings())

        return {
            "enabled": self.is_available(),
            "tls": tls,
            "connected": self.is_available(),
            "state": self._state.value,
        }

    # ── Error handling & reconnect ───────────────────────────────

    def report_error(self, exc: BaseException) -> None:
        """Record a failed remote command and reconnect if it is transient."""
        if self._state is not ConnectionState.CONNECTED:
            return
        if not is_reconnectable(exc):
            logger.debug(f"Redis error not in reconnect allow-list: {exc!r}")
            return

        logger.warning(f"Transient Redis error, scheduling reconnect: {exc!r}")
        self._transition(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.ensure_future(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        config = self._config
        client = self._client
        if config is None or client is None:
            return

        # Force fresh sockets so a failover to a new primary is picked up
        try:
            await client.connection_pool.disconnect()
        except Exception as e:
            logger.debug(f"Dropping pooled Redis connections failed: {e}")

        attempt = 0
        while True:
            attempt += 1
            delay = config.backoff_delay(attempt)
            if delay is None:
                logger.error(
                    f"[FAILED] Redis reconnect attempts exhausted "
                    f"({config.reconnect_max_attempts}), giving up until reconnect()"
                )
                if self._client is client:
                    self._client = None
                    self._transition(ConnectionState.FAILED)
                await self._close_client(client)
                return

            logger.info(
                f"Redis reconnecting in {int(delay * 1000)}ms "
                f"({attempt}/{config.reconnect_max_attempts})"
            )
            await asyncio.sleep(delay)

            try:
                await asyncio.wait_for(client.ping(), timeout=config.connect_timeout)
            except Exception as e:
                store_reconnect_attempts_total.labels(outcome="failure").inc()
                logger.warning(f"Redis reconnect attempt {attempt} failed: {e}")
                continue

            store_reconnect_attempts_total.labels(outcome="success").inc()
            if self._client is not client:
                return
            self._transition(ConnectionState.CONNECTED)
            logger.info("[SUCCESS] Redis connection restored")
            return

    def _start_monitor(self) -> None:
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.ensure_future(self._monitor())

    async def _monitor(self) -> None:
        """Periodic PING; failures go through report_error()."""
        while self._state in (ConnectionState.CONNECTED, ConnectionState.RECONNECTING):
            interval = self._config.health_check_interval if self._config else 30.0
            await asyncio.sleep(interval)

            # The reconnect loop owns probing while RECONNECTING
            client = self._client
            if self._state is not ConnectionState.CONNECTED or client is None:
                continue

            try:
                await asyncio.wait_for(client.ping(), timeout=self.command_timeout)
            except Exception as e:
                self.report_error(e)

    # ── Helpers ──────────────────────────────────────────────────

    @staticmethod
    async def _close_client(client: Any) -> None:
        try:
            await client.aclose()
        except Exception as e:
            logger.debug(f"Error closing Redis client: {e}")

    @staticmethod
    async def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
