"""Redis-backed rate limiter and stats cache. Skipped when no server is reachable."""

from __future__ import annotations

import os
import uuid
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
import redis.asyncio as redis
from redis.exceptions import RedisError

from questproof.verification.rate_limiter import RedisRateLimiter
from questproof.verification.stats_cache import RedisCacheBackend, StatsCache

pytestmark = pytest.mark.asyncio

REDIS_URL = os.environ.get("QP_REDIS_URL", "redis://localhost:6379/0")


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[redis.Redis, None]:
    client = redis.from_url(REDIS_URL, decode_responses=True, socket_connect_timeout=0.5)
    try:
        await client.ping()
    except (RedisError, OSError):
        await client.aclose()
        pytest.skip(f"Redis not reachable at {REDIS_URL}")
    yield client
    await client.aclose()


@pytest.fixture
def prefix() -> str:
    return f"test-{uuid.uuid4().hex}"


class TestRedisRateLimiter:
    async def test_window(self, redis_client: redis.Redis, prefix: str) -> None:
        limiter = RedisRateLimiter(redis_client, prefix=prefix)

        first = await limiter.allow("verify:1:valorant", 2, 60)
        second = await limiter.allow("verify:1:valorant", 2, 60)
        third = await limiter.allow("verify:1:valorant", 2, 60)

        assert first and first.remaining == 1
        assert second and second.remaining == 0
        assert not third
        assert 0 < third.retry_after <= 60
        # Other keys have their own window
        assert await limiter.allow("verify:2:valorant", 2, 60)

        await redis_client.delete(f"{prefix}:verify:1:valorant", f"{prefix}:verify:2:valorant")

    async def test_key_expires_with_window(self, redis_client: redis.Redis, prefix: str) -> None:
        limiter = RedisRateLimiter(redis_client, prefix=prefix)
        await limiter.allow("k", 5, 2)
        ttl_ms = await redis_client.pttl(f"{prefix}:k")
        assert 0 < ttl_ms <= 2000
        await redis_client.delete(f"{prefix}:k")


class TestRedisCacheBackend:
    async def test_round_trip_with_ttl(self, redis_client: redis.Redis, prefix: str) -> None:
        backend = RedisCacheBackend(redis_client, prefix=prefix)
        stats = {"solo_queue": {"tier": "GOLD", "wins": 10}}

        await backend.set("lol:abc", stats, 30)
        assert await backend.get("lol:abc") == stats
        assert 0 < await redis_client.ttl(f"{prefix}:lol:abc") <= 30

        await backend.delete("lol:abc")
        assert await backend.get("lol:abc") is None

    async def test_stats_cache_over_redis(self, redis_client: redis.Redis, prefix: str) -> None:
        cache = StatsCache(RedisCacheBackend(redis_client, prefix=prefix), ttl=30)
        calls = 0

        async def fetch() -> dict[str, int]:
            nonlocal calls
            calls += 1
            return {"kills": 5}

        first, hit1 = await cache.get_or_fetch("counter_strike", "76561198000000001", fetch)
        second, hit2 = await cache.get_or_fetch("counter_strike", "76561198000000001", fetch)
        assert first == second == {"kills": 5}
        assert (hit1, hit2) == (False, True)
        assert calls == 1

        await cache.invalidate("counter_strike", "76561198000000001")


async def test_cache_degrades_to_miss_when_redis_is_down() -> None:
    client = redis.from_url("redis://127.0.0.1:1/0", decode_responses=True, socket_connect_timeout=0.2)
    backend = RedisCacheBackend(client)
    try:
        assert await backend.get("lol:abc") is None
        await backend.set("lol:abc", {"a": 1}, 10)
        await backend.delete("lol:abc")
    finally:
        await client.aclose()
