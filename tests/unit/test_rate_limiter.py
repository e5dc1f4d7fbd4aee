"""Unit tests for the sliding-window rate limiter."""

from __future__ import annotations

import asyncio

import pytest

from questproof.verification.rate_limiter import InMemoryRateLimiter, RateDecision


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.mark.asyncio
class TestInMemoryRateLimiter:
    """Admission, denial and window sliding."""

    async def test_allows_up_to_limit(self) -> None:
        limiter = InMemoryRateLimiter(clock=FakeClock())
        decisions = [await limiter.allow("k", 3, 60) for _ in range(3)]
        assert all(decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]

    async def test_denies_over_limit_with_retry_after(self) -> None:
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        await limiter.allow("k", 2, 60)
        clock.advance(10)
        await limiter.allow("k", 2, 60)
        clock.advance(5)

        decision = await limiter.allow("k", 2, 60)
        assert not decision
        # Oldest admitted call was 15s ago, so it leaves the window in 45s
        assert decision.retry_after == pytest.approx(45.0)

    async def test_denied_calls_do_not_consume_budget(self) -> None:
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        await limiter.allow("k", 1, 60)
        for _ in range(5):
            assert not await limiter.allow("k", 1, 60)
        clock.advance(60)
        assert await limiter.allow("k", 1, 60)

    async def test_window_slides(self) -> None:
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        await limiter.allow("k", 2, 60)
        clock.advance(30)
        await limiter.allow("k", 2, 60)
        assert not await limiter.allow("k", 2, 60)

        clock.advance(30)  # first call expires, second still inside
        assert await limiter.allow("k", 2, 60)
        assert not await limiter.allow("k", 2, 60)

    async def test_keys_are_independent(self) -> None:
        limiter = InMemoryRateLimiter(clock=FakeClock())
        assert await limiter.allow("verify:1:valorant", 1, 60)
        assert not await limiter.allow("verify:1:valorant", 1, 60)
        assert await limiter.allow("verify:1:league_of_legends", 1, 60)
        assert await limiter.allow("verify:2:valorant", 1, 60)

    async def test_concurrent_callers_never_exceed_limit(self) -> None:
        limiter = InMemoryRateLimiter(clock=FakeClock())
        decisions = await asyncio.gather(*(limiter.allow("k", 5, 60) for _ in range(20)))
        assert sum(1 for d in decisions if d) == 5

    async def test_reset_single_key(self) -> None:
        limiter = InMemoryRateLimiter(clock=FakeClock())
        await limiter.allow("a", 1, 60)
        await limiter.allow("b", 1, 60)
        limiter.reset("a")
        assert await limiter.allow("a", 1, 60)
        assert not await limiter.allow("b", 1, 60)

    async def test_reset_all(self) -> None:
        limiter = InMemoryRateLimiter(clock=FakeClock())
        await limiter.allow("a", 1, 60)
        limiter.reset()
        assert await limiter.allow("a", 1, 60)

    async def test_expired_keys_are_swept(self) -> None:
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        for i in range(1000):
            await limiter.allow(f"ip:10.0.{i // 256}.{i % 256}", 100, 60)
        assert len(limiter._windows) == 1000

        clock.advance(61)
        assert await limiter.allow("ip:192.168.0.1", 100, 60)
        assert list(limiter._windows) == ["ip:192.168.0.1"]
        assert list(limiter._expires) == ["ip:192.168.0.1"]

    async def test_live_keys_survive_a_sweep(self) -> None:
        clock = FakeClock()
        limiter = InMemoryRateLimiter(clock=clock)
        await limiter.allow("old", 1, 60)
        clock.advance(30)
        await limiter.allow("recent", 1, 60)
        clock.advance(31)
        await limiter.allow("new", 1, 60)
        assert sorted(limiter._windows) == ["new", "recent"]
        assert not await limiter.allow("recent", 1, 60)

    async def test_zero_limit_keeps_no_state(self) -> None:
        limiter = InMemoryRateLimiter(clock=FakeClock())
        decision = await limiter.allow("k", 0, 60)
        assert not decision
        assert decision.retry_after == 60
        assert limiter._windows == {}


def test_decision_truthiness() -> None:
    assert RateDecision(True)
    assert not RateDecision(False, retry_after=3.0)
