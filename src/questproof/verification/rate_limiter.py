"""Sliding-window rate limiting.

``allow`` records the call when it is admitted, so checking and
consuming budget are one step. A key never exceeds ``limit`` admitted
calls inside any trailing window, even when callers race.
"""

from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

import redis.asyncio as redis


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    # Seconds until the oldest call leaves the window; 0 when allowed
    retry_after: float = 0.0
    remaining: int = 0

    def __bool__(self) -> bool:
        return self.allowed


class RateLimiter(ABC):
    @abstractmethod
    async def allow(self, key: str, limit: int, window: float) -> RateDecision: ...

    async def close(self) -> None:
        return None


class InMemoryRateLimiter(RateLimiter):
    """Process-local windows. The check and the append never straddle an await.

    Keys whose calls have all left their window are swept, at most once
    per window, so one-off keys such as client IPs do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._expires: dict[str, float] = {}
        self._next_sweep = 0.0

    async def allow(self, key: str, limit: int, window: float) -> RateDecision:
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
            self._next_sweep = now + window

        stamps = self._windows.get(key, deque())
        cutoff = now - window
        while stamps and stamps[0] <= cutoff:
            stamps.popleft()

        if len(stamps) < limit:
            stamps.append(now)
            self._windows[key] = stamps
            self._expires[key] = now + window
            return RateDecision(True, remaining=limit - len(stamps))

        if not stamps:
            self._forget(key)
            return RateDecision(False, window)
        return RateDecision(False, max(stamps[0] + window - now, 0.0))

    def _sweep(self, now: float) -> None:
        for key in [k for k, expires_at in self._expires.items() if expires_at <= now]:
            self._forget(key)

    def _forget(self, key: str) -> None:
        self._windows.pop(key, None)
        self._expires.pop(key, None)

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._windows.clear()
            self._expires.clear()
        else:
            self._forget(key)


# Prune, count and record atomically on the Redis server.
# Scores are wall-clock seconds; retry-after is returned as a string
# because Lua numbers are truncated to integers on the way out.
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count < limit then
  redis.call('ZADD', key, now, ARGV[4])
  redis.call('PEXPIRE', key, math.ceil(window * 1000))
  return {1, '0', limit - count - 1}
end
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return {0, tostring(tonumber(oldest[2]) + window - now), 0}
"""


class RedisRateLimiter(RateLimiter):
    """Windows shared by every worker through one sorted set per key."""

    def __init__(self, client: redis.Redis, prefix: str = "ratelimit") -> None:
        self._redis = client
        self._prefix = prefix
        self._script = client.register_script(_SLIDING_WINDOW_LUA)

    async def allow(self, key: str, limit: int, window: float) -> RateDecision:
        now = time.time()
        allowed, retry_after, remaining = await self._script(
            keys=[f"{self._prefix}:{key}"],
            args=[now, window, limit, f"{now}:{uuid.uuid4().hex}"],
        )
        if int(allowed) == 1:
            return RateDecision(True, remaining=int(remaining))
        return RateDecision(False, max(float(retry_after), 0.0))
