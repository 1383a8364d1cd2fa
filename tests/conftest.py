"""
Shared pytest fixtures for the cache & session service tests.

This file contains reusable fixtures for:
- FastAPI test client
- A simulated clock for TTL tests
- An in-process fake of the async Redis client
- A connection stub the engines can route on
- Environment setup
"""

import asyncio
import os
import re
from typing import Any, Dict, Generator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient


# ============================================================================
# Environment Setup
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables before any tests run."""
    os.environ["API_KEY"] = "test-api-key"
    os.environ.pop("REDIS_URL", None)
    os.environ.pop("REDIS_TLS", None)
    os.environ.pop("REDIS_TLS_CA", None)

    # The global settings object may have been built during collection
    from app.settings import settings

    settings.api_key = "test-api-key"

    yield


# ============================================================================
# Test doubles
# ============================================================================


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def redis_glob_regex(pattern: str):
    """Compile a Redis MATCH glob: ``*``, ``?``, ``[...]`` and ``\\`` escapes."""
    out = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            out.append(".*")
        elif char == "?":
            out.append(".")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(char))
            else:
                out.append("[" + pattern[i + 1 : end] + "]")
                i = end
        else:
            out.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


class FakeRedis:
    """Minimal in-process stand-in for ``redis.asyncio.Redis``.

    Set ``fail_with`` to make every command raise, or ``hang`` to make every
    command block (for timeout tests).
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.data: Dict[str, Any] = {}
        self.fail_with: Optional[BaseException] = None
        self.hang = False
        self.ping_delay = 0.0
        self.closed = False
        self.connection_pool = MagicMock()
        self.connection_pool.disconnect = AsyncMock()

    async def _check(self) -> None:
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail_with is not None:
            raise self.fail_with

    def _live(self, key: str) -> Optional[str]:
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self.clock() >= expires_at:
            del self.data[key]
            return None
        return value

    def put(self, key: str, value: str) -> None:
        """Write directly, bypassing failure injection."""
        self.data[key] = (value, None)

    async def ping(self) -> bool:
        if self.ping_delay:
            await asyncio.sleep(self.ping_delay)
        await self._check()
        return True

    async def get(self, key: str) -> Optional[str]:
        await self._check()
        return self._live(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        await self._check()
        self.data[key] = (value, self.clock() + ex if ex else None)
        return True

    async def delete(self, *keys: str) -> int:
        await self._check()
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                removed += 1
            self.data.pop(key, None)
        return removed

    async def exists(self, key: str) -> int:
        await self._check()
        return 1 if self._live(key) is not None else 0

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None):
        await self._check()
        regex = redis_glob_regex(match) if match else None
        for key in list(self.data):
            if self._live(key) is None:
                continue
            if regex is None or regex.match(key):
                yield key

    async def aclose(self) -> None:
        self.closed = True


class StubConnection:
    """Connection manager stand-in exposing only what the engines use."""

    def __init__(self, client: Optional[FakeRedis] = None, available: bool = True):
        self._client = client
        self.available = available
        self.command_timeout = 0.5
        self.report_error = MagicMock()

    def is_available(self) -> bool:
        return self.available and self._client is not None

    def client(self) -> Optional[FakeRedis]:
        return self._client


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def remote_connection(fake_redis) -> StubConnection:
    """Connection that reports Redis as available."""
    return StubConnection(fake_redis, available=True)


@pytest.fixture
def memory_connection() -> StubConnection:
    """Connection with no Redis at all (memory-only mode)."""
    return StubConnection(None, available=False)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    FastAPI test client running the full lifespan.

    REDIS_URL is unset, so the service runs in memory-only mode.
    """
    # Import here so the environment above is applied first
    from app.main import app

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    """Return authentication headers for admin requests."""
    return {"X-API-Key": "test-api-key"}


@pytest.fixture
def make_fake_redis(clock):
    """Factory for extra FakeRedis clients sharing the test clock."""

    def make(**attrs) -> FakeRedis:
        fake = FakeRedis(clock)
        for name, value in attrs.items():
            setattr(fake, name, value)
        return fake

    return make
