"""
Tests for the cache engine.

Each behaviour is checked on both backends: Redis (fake client) and the
in-memory fallback. Remote failures must fall through to memory.
"""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

PREFIX = "test:"


def _cache(connection, clock, **kwargs):
    from app.storage.cache import CacheStore

    return CacheStore(connection, clock=clock, key_prefix=PREFIX, **kwargs)


@pytest.mark.unit
class TestCacheKeys:
    """Tests for key layout helpers."""

    def test_prefix(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)

        assert cache.prefix == "test:cache:"

    def test_build_key(self):
        from app.storage.cache import CACHE_KEYS, build_key

        assert build_key(CACHE_KEYS["ACCOUNT_INFO"], "42") == "account:42"
        assert CACHE_KEYS["API_RESPONSE"] == "api:"

    def test_default_ttl(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)

        assert cache.default_ttl == 60


@pytest.mark.unit
class TestMemoryBackend:
    """Cache behaviour with Redis unavailable."""

    @pytest.mark.asyncio
    async def test_round_trip(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        value = {"name": "Ada", "tags": ["x", "y"], "n": 3}

        assert await cache.set("account:1", value) is True
        assert await cache.get("account:1") == value
        assert cache.backend == "memory"

    @pytest.mark.asyncio
    async def test_missing_key(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)

        assert await cache.get("nope") is None
        assert await cache.exists("nope") is False

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        await cache.set("k", "v", ttl=30)

        clock.advance(29)
        assert await cache.get("k") == "v"
        assert await cache.exists("k") is True

        clock.advance(2)
        assert await cache.get("k") is None
        assert await cache.exists("k") is False

    @pytest.mark.asyncio
    async def test_default_ttl_applies(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        await cache.set("k", "v")

        clock.advance(61)

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_delete(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        await cache.set("k", "v")

        assert await cache.delete("k") is True
        assert await cache.get("k") is None
        assert await cache.delete("k") is True

    @pytest.mark.asyncio
    async def test_delete_by_pattern(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        await cache.set("account:1", 1)
        await cache.set("account:2", 2)
        await cache.set("projects:1", 3)

        assert await cache.delete_by_pattern("account:*") == 2
        assert await cache.get("account:1") is None
        assert await cache.get("projects:1") == 3

    @pytest.mark.asyncio
    async def test_stats(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await cache.stats() == {"backend": "memory", "fallback_size": 2}

    @pytest.mark.asyncio
    async def test_flush(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        await cache.set("a", 1)

        await cache.flush()

        assert cache.fallback_size == 0

    @pytest.mark.asyncio
    async def test_purge_expired(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        await cache.set("short", 1, ttl=5)
        await cache.set("long", 2, ttl=500)

        clock.advance(10)

        assert cache.purge_expired() == 1
        assert cache.fallback_size == 1


@pytest.mark.unit
class TestRedisBackend:
    """Cache behaviour with Redis available."""

    @pytest.mark.asyncio
    async def test_round_trip_uses_redis(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)

        await cache.set("account:1", {"name": "Ada"}, ttl=120)

        assert cache.backend == "redis"
        assert "test:cache:account:1" in fake_redis.data
        assert fake_redis.data["test:cache:account:1"][1] == clock() + 120
        assert cache.fallback_size == 0
        assert await cache.get("account:1") == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_redis_ttl_expiry(self, remote_connection, clock):
        cache = _cache(remote_connection, clock)
        await cache.set("k", "v", ttl=10)

        clock.advance(10)

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_exists(self, remote_connection, clock):
        cache = _cache(remote_connection, clock)
        await cache.set("k", "v")

        assert await cache.exists("k") is True
        assert await cache.exists("other") is False

    @pytest.mark.asyncio
    async def test_remote_miss_does_not_read_memory(self, remote_connection, clock):
        cache = _cache(remote_connection, clock)
        cache._fallback.set("test:cache:k", '"stale"', 60)

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_delete_removes_both_backends(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)
        await cache.set("k", "v")
        cache._fallback.set("test:cache:k", '"v"', 60)

        await cache.delete("k")

        assert "test:cache:k" not in fake_redis.data
        assert cache.fallback_size == 0

    @pytest.mark.asyncio
    async def test_delete_by_pattern_sums_both_backends(self, remote_connection, clock):
        cache = _cache(remote_connection, clock)
        await cache.set("account:1", 1)
        await cache.set("account:2", 2)
        await cache.set("projects:1", 3)
        cache._fallback.set("test:cache:account:1", "1", 60)

        # Key present in both backends counts twice
        assert await cache.delete_by_pattern("account:*") == 3
        assert await cache.get("projects:1") == 3

    @pytest.mark.asyncio
    async def test_pattern_does_not_escape_prefix(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)
        fake_redis.put("other:cache:account:1", "1")
        await cache.set("account:1", 1)

        assert await cache.delete_by_pattern("account:*") == 1
        assert "other:cache:account:1" in fake_redis.data

    @pytest.mark.asyncio
    async def test_pattern_metacharacters_match_literally(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)
        for key in ("report?1", "reportX1", "tag[a]", "taga"):
            await cache.set(key, 1)
        cache._fallback.set("test:cache:reportY1", "1", 60)

        assert await cache.delete_by_pattern("report?1") == 1
        assert await cache.delete_by_pattern("tag[a]") == 1

        assert "test:cache:reportX1" in fake_redis.data
        assert "test:cache:taga" in fake_redis.data
        assert cache.fallback_size == 1

    @pytest.mark.asyncio
    async def test_stats_counts_remote_keys(self, remote_connection, clock):
        cache = _cache(remote_connection, clock)
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await cache.stats() == {"backend": "redis", "fallback_size": 0, "remote_keys": 2}

    @pytest.mark.asyncio
    async def test_flush(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)
        await cache.set("a", 1)
        fake_redis.put("unrelated", "x")

        await cache.flush()

        assert list(fake_redis.data) == ["unrelated"]


@pytest.mark.unit
class TestRemoteFailureFallthrough:
    """A failing Redis command never fails the call."""

    @pytest.mark.asyncio
    async def test_set_falls_back_to_memory(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)
        fake_redis.fail_with = RedisConnectionError("Connection reset by peer")

        assert await cache.set("k", "v") is True

        assert cache.fallback_size == 1
        remote_connection.report_error.assert_called_once()
        assert isinstance(remote_connection.report_error.call_args[0][0], RedisConnectionError)

    @pytest.mark.asyncio
    async def test_remote_failure_is_wrapped(self, remote_connection, fake_redis, clock):
        from app.exceptions import StoreConnectionError

        cache = _cache(remote_connection, clock)
        fake_redis.fail_with = RedisConnectionError("down")

        with pytest.raises(StoreConnectionError) as exc_info:
            await cache._execute("get", fake_redis.get("test:cache:k"))

        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value.__cause__, RedisConnectionError)
        remote_connection.report_error.assert_called_once_with(exc_info.value.__cause__)

    @pytest.mark.asyncio
    async def test_get_falls_back_to_memory(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)
        fake_redis.fail_with = RedisConnectionError("down")
        await cache.set("k", "v")

        assert await cache.get("k") == "v"
        assert await cache.exists("k") is True

    @pytest.mark.asyncio
    async def test_delete_by_pattern_still_clears_memory(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)
        cache._fallback.set("test:cache:account:1", "1", 60)
        fake_redis.fail_with = RedisConnectionError("down")

        assert await cache.delete_by_pattern("account:*") == 1

    @pytest.mark.asyncio
    async def test_stats_tolerates_scan_failure(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)
        fake_redis.fail_with = RedisConnectionError("down")

        stats = await cache.stats()

        assert stats["remote_keys"] == 0

    @pytest.mark.asyncio
    async def test_command_timeout_falls_back(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)
        remote_connection.command_timeout = 0.01
        fake_redis.hang = True

        await cache.set("k", "v")

        assert await cache.get("k") == "v"
        reported = remote_connection.report_error.call_args[0][0]
        assert isinstance(reported, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_availability_flip_reads_memory(self, remote_connection, clock):
        cache = _cache(remote_connection, clock)
        await cache.set("k", "remote")

        remote_connection.available = False

        assert await cache.get("k") is None
        await cache.set("k", "local")
        assert await cache.get("k") == "local"


@pytest.mark.unit
class TestGetOrSet:
    """Tests for compute-on-miss."""

    @pytest.mark.asyncio
    async def test_producer_called_once(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        calls = []

        def producer():
            calls.append(1)
            return {"balance": 10}

        assert await cache.get_or_set("balance:1", producer) == {"balance": 10}
        assert await cache.get_or_set("balance:1", producer) == {"balance": 10}
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_async_producer(self, remote_connection, clock):
        cache = _cache(remote_connection, clock)

        async def producer():
            return [1, 2, 3]

        assert await cache.get_or_set("projects:1", producer) == [1, 2, 3]
        assert await cache.get("projects:1") == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_not_produced_is_not_cached(self, memory_connection, clock):
        from app.storage.cache import NOT_PRODUCED

        cache = _cache(memory_connection, clock)
        calls = []

        def producer():
            calls.append(1)
            return NOT_PRODUCED

        assert await cache.get_or_set("k", producer) is None
        assert await cache.get_or_set("k", producer) is None
        assert len(calls) == 2
        assert cache.fallback_size == 0

    @pytest.mark.asyncio
    async def test_none_is_cached_as_null(self, remote_connection, fake_redis, clock):
        cache = _cache(remote_connection, clock)
        calls = []

        def producer():
            calls.append(1)
            return None

        assert await cache.get_or_set("k", producer) is None
        assert await cache.get_or_set("k", producer) is None
        assert len(calls) == 1
        assert fake_redis.data["test:cache:k"][0] == "null"

    @pytest.mark.asyncio
    async def test_cached_null_hits_in_memory(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        await cache.set("k", None)

        def producer():
            raise AssertionError("producer must not run on a hit")

        assert await cache.get_or_set("k", producer) is None

    @pytest.mark.asyncio
    async def test_producer_error_propagates(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)

        def producer():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError, match="upstream down"):
            await cache.get_or_set("k", producer)

    @pytest.mark.asyncio
    async def test_ttl_is_honoured(self, memory_connection, clock):
        cache = _cache(memory_connection, clock)
        calls = []

        def producer():
            calls.append(1)
            return len(calls)

        await cache.get_or_set("k", producer, ttl=5)
        clock.advance(6)

        assert await cache.get_or_set("k", producer, ttl=5) == 2


@pytest.mark.unit
class TestSerialization:
    """Codec failures surface as SerializationError."""

    @pytest.mark.asyncio
    async def test_unencodable_value(self, memory_connection, clock):
        from app.exceptions import SerializationError

        cache = _cache(memory_connection, clock)

        with pytest.raises(SerializationError):
            await cache.set("k", object())

    @pytest.mark.asyncio
    async def test_malformed_remote_payload(self, remote_connection, fake_redis, clock):
        from app.exceptions import SerializationError

        cache = _cache(remote_connection, clock)
        fake_redis.put("test:cache:k", "{not json")

        with pytest.raises(SerializationError):
            await cache.get("k")

    @pytest.mark.asyncio
    async def test_custom_codec(self, memory_connection, clock):
        class UpperCodec:
            def dumps(self, value):
                return value.upper()

            def loads(self, data):
                return data.lower()

        cache = _cache(memory_connection, clock, codec=UpperCodec())
        await cache.set("k", "Hello")

        assert cache._fallback.get("test:cache:k") == "HELLO"
        assert await cache.get("k") == "hello"
