"""Read-through cache for provider stats with single-flight fetches.

Concurrent misses for the same (game, account) share one upstream call.
Waiters hold the shared fetch behind ``asyncio.shield``; when the last
waiter is cancelled the fetch itself is cancelled. Failed fetches are
never cached.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from copy import deepcopy
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

Stats = dict[str, Any]


def cache_key(game: str, account: str) -> str:
    """Accounts are hashed so raw identifiers never land in the cache keyspace."""
    digest = hashlib.sha256(account.encode("utf-8")).hexdigest()
    return f"{game}:{digest}"


class CacheBackend(ABC):
    @abstractmethod
    async def get(self, key: str) -> Stats | None: ...

    @abstractmethod
    async def set(self, key: str, value: Stats, ttl: float) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...


class MemoryCacheBackend(CacheBackend):
    """Process-local entries. Expired entries are dropped on read and swept on write."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Stats, float]] = {}
        self._next_sweep = 0.0

    async def get(self, key: str) -> Stats | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return deepcopy(value)

    async def set(self, key: str, value: Stats, ttl: float) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self._entries = {k: e for k, e in self._entries.items() if e[1] > now}
            self._next_sweep = now + ttl
        self._entries[key] = (deepcopy(value), now + ttl)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisCacheBackend(CacheBackend):
    """JSON values with a server-side TTL. Redis outages degrade to cache misses."""

    def __init__(self, client: redis.Redis, prefix: str = "stats") -> None:
        self._redis = client
        self._prefix = prefix

    async def get(self, key: str) -> Stats | None:
        try:
            raw = await self._redis.get(f"{self._prefix}:{key}")
        except RedisError:
            logger.warning("Stats cache read failed for %s", key, exc_info=True)
            return None
        return json.loads(raw) if raw else None

    async def set(self, key: str, value: Stats, ttl: float) -> None:
        try:
            await self._redis.set(f"{self._prefix}:{key}", json.dumps(value), ex=max(int(ttl), 1))
        except RedisError:
            logger.warning("Stats cache write failed for %s", key, exc_info=True)

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(f"{self._prefix}:{key}")
        except RedisError:
            logger.warning("Stats cache delete failed for %s", key, exc_info=True)


class _Flight:
    __slots__ = ("task", "waiters")

    def __init__(self, task: asyncio.Task[Stats]) -> None:
        self.task = task
        self.waiters = 0


class StatsCache:
    """TTL-bounded memoisation of provider results keyed by (game, account)."""

    def __init__(self, backend: CacheBackend, ttl: float = 300.0) -> None:
        self._backend = backend
        self._ttl = ttl
        self._inflight: dict[str, _Flight] = {}
        self.hits = 0
        self.misses = 0

    async def get_or_fetch(
        self,
        game: str,
        account: str,
        fetch: Callable[[], Awaitable[Stats]],
        ttl: float | None = None,
    ) -> tuple[Stats, bool]:
        """Return ``(stats, from_cache)``. ``fetch`` runs at most once per key at a time."""
        key = cache_key(game, account)
        cached = await self._backend.get(key)
        if cached is not None:
            self.hits += 1
            return cached, True

        flight = self._inflight.get(key)
        if flight is None:
            self.misses += 1
            flight = _Flight(asyncio.create_task(self._fill(key, fetch, ttl or self._ttl)))
            self._inflight[key] = flight
            flight.task.add_done_callback(lambda t, k=key, f=flight: self._finish(k, f))

        flight.waiters += 1
        try:
            value = await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                flight.task.cancel()
            raise
        flight.waiters -= 1
        return deepcopy(value), False

    async def invalidate(self, game: str, account: str) -> None:
        await self._backend.delete(cache_key(game, account))

    async def _fill(self, key: str, fetch: Callable[[], Awaitable[Stats]], ttl: float) -> Stats:
        value = await fetch()
        await self._backend.set(key, value, ttl)
        return value

    def _finish(self, key: str, flight: _Flight) -> None:
        if self._inflight.get(key) is flight:
            del self._inflight[key]
        # Mark the outcome retrieved; every waiter already saw it through the shield
        if not flight.task.cancelled():
            flight.task.exception()

    @property
    def stats(self) -> dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "inflight": len(self._inflight)}
