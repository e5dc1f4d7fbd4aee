"""Unit tests for the quest progress state machine and world leaderboards."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from questproof.errors import InvalidProgressTransition
from questproof.ledger import (
    VALID_TRANSITIONS,
    LeaderboardAggregator,
    ProgressLedger,
    competition_ranks,
    validate_transition,
)
from questproof.store import MemoryStore, ProgressRecord, ProgressStatus
from questproof.verification.skill import DEFAULT_TIER_POINTS

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

NOT_STARTED = ProgressStatus.NOT_STARTED
IN_PROGRESS = ProgressStatus.IN_PROGRESS
COMPLETED = ProgressStatus.COMPLETED
VERIFIED = ProgressStatus.VERIFIED


class StepClock:
    """Each call is one second after the previous one."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _ledger(store: MemoryStore) -> ProgressLedger:
    return ProgressLedger(LeaderboardAggregator(store, clock=StepClock()), DEFAULT_TIER_POINTS)


class TestTransitions:
    def test_verified_is_terminal(self) -> None:
        assert VALID_TRANSITIONS[VERIFIED] == []

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (NOT_STARTED, IN_PROGRESS),
            (NOT_STARTED, VERIFIED),
            (IN_PROGRESS, COMPLETED),
            (IN_PROGRESS, VERIFIED),
            (IN_PROGRESS, NOT_STARTED),
            (COMPLETED, VERIFIED),
            (COMPLETED, NOT_STARTED),
            (VERIFIED, VERIFIED),
        ],
    )
    def test_valid(self, current: ProgressStatus, target: ProgressStatus) -> None:
        validate_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (COMPLETED, IN_PROGRESS),
            (VERIFIED, COMPLETED),
            (VERIFIED, NOT_STARTED),
            (VERIFIED, IN_PROGRESS),
        ],
    )
    def test_invalid(self, current: ProgressStatus, target: ProgressStatus) -> None:
        with pytest.raises(InvalidProgressTransition, match="Invalid transition"):
            validate_transition(current, target)


@pytest.mark.asyncio
class TestProgressLedger:
    async def test_apply_score_verifies_and_credits_world(self) -> None:
        store = MemoryStore()
        ledger = _ledger(store)
        async with store.unit_of_work() as uow:
            progress, entry = await ledger.apply_score(uow, 1, 100, 10, "Intermediate", NOW)

        assert progress.status == VERIFIED
        assert progress.score == 250
        assert progress.completed_at == NOW
        assert entry.score == 250

        async with store.unit_of_work() as uow:
            assert (await uow.get_progress(1, 100)).status == VERIFIED
            assert (await uow.get_leaderboard_entry(1, 10)).score == 250

    async def test_scores_accumulate_across_quests_in_a_world(self) -> None:
        store = MemoryStore()
        ledger = _ledger(store)
        async with store.unit_of_work() as uow:
            await ledger.apply_score(uow, 1, 100, 10, "Intermediate", NOW)
            _, entry = await ledger.apply_score(uow, 1, 101, 10, "Expert", NOW)
        assert entry.score == 1250

    async def test_apply_score_from_in_progress(self) -> None:
        store = MemoryStore()
        ledger = _ledger(store)
        async with store.unit_of_work() as uow:
            await ledger.mark_in_progress(uow, 1, 100)
            progress, _ = await ledger.apply_score(uow, 1, 100, 10, "Beginner", NOW)
        assert progress.status == VERIFIED
        assert progress.score == 100

    async def test_unknown_tier_applies_nothing(self) -> None:
        store = MemoryStore()
        ledger = _ledger(store)
        with pytest.raises(KeyError):
            async with store.unit_of_work() as uow:
                await ledger.apply_score(uow, 1, 100, 10, "Legendary", NOW)
        async with store.unit_of_work() as uow:
            assert await uow.get_progress(1, 100) is None

    async def test_mark_in_progress_never_moves_backwards(self) -> None:
        store = MemoryStore()
        ledger = _ledger(store)
        async with store.unit_of_work() as uow:
            await uow.save_progress(ProgressRecord(user_id=1, quest_id=100, status=COMPLETED))
            progress = await ledger.mark_in_progress(uow, 1, 100)
        assert progress.status == COMPLETED

    async def test_revoke_downgrades_verified(self) -> None:
        store = MemoryStore()
        ledger = _ledger(store)
        async with store.unit_of_work() as uow:
            await ledger.apply_score(uow, 1, 100, 10, "Advanced", NOW)
            progress = await ledger.revoke(uow, 1, 100)
        assert progress is not None
        assert progress.status == COMPLETED
        # Points already credited stay on the leaderboard
        async with store.unit_of_work() as uow:
            assert (await uow.get_leaderboard_entry(1, 10)).score == 600

    async def test_revoke_without_verified_progress_is_a_noop(self) -> None:
        store = MemoryStore()
        ledger = _ledger(store)
        async with store.unit_of_work() as uow:
            assert await ledger.revoke(uow, 1, 100) is None
            await ledger.mark_in_progress(uow, 1, 100)
            progress = await ledger.revoke(uow, 1, 100)
        assert progress.status == IN_PROGRESS

    @pytest.mark.parametrize("status", [IN_PROGRESS, COMPLETED])
    async def test_abandon_resets(self, status: ProgressStatus) -> None:
        store = MemoryStore()
        ledger = _ledger(store)
        async with store.unit_of_work() as uow:
            await uow.save_progress(ProgressRecord(user_id=1, quest_id=100, status=status, completed_at=NOW))
            progress = await ledger.abandon(uow, 1, 100)
        assert progress.status == NOT_STARTED
        assert progress.completed_at is None

    @pytest.mark.parametrize("status", [NOT_STARTED, VERIFIED])
    async def test_abandon_rejected(self, status: ProgressStatus) -> None:
        store = MemoryStore()
        ledger = _ledger(store)
        async with store.unit_of_work() as uow:
            await uow.save_progress(ProgressRecord(user_id=1, quest_id=100, status=status))
        with pytest.raises(InvalidProgressTransition):
            async with store.unit_of_work() as uow:
                await ledger.abandon(uow, 1, 100)


@pytest.mark.asyncio
class TestLeaderboardAggregator:
    async def test_negative_contribution_rejected(self) -> None:
        aggregator = LeaderboardAggregator(MemoryStore())
        with pytest.raises(ValueError, match="non-negative"):
            await aggregator.accumulate(1, 10, -5)

    async def test_concurrent_contributions_are_not_lost(self) -> None:
        aggregator = LeaderboardAggregator(MemoryStore())
        await asyncio.gather(*(aggregator.accumulate(1, 10, 5) for _ in range(20)))
        entry = await aggregator.entry(1, 10)
        assert entry is not None
        assert entry.score == 100

    async def test_worlds_are_separate(self) -> None:
        aggregator = LeaderboardAggregator(MemoryStore())
        await aggregator.accumulate(1, 10, 100)
        await aggregator.accumulate(1, 20, 40)
        assert (await aggregator.entry(1, 10)).score == 100
        assert (await aggregator.entry(1, 20)).score == 40

    async def test_ranking(self) -> None:
        aggregator = LeaderboardAggregator(MemoryStore(), clock=StepClock())
        await aggregator.accumulate(1, 10, 250)
        await aggregator.accumulate(2, 10, 400)
        await aggregator.accumulate(3, 10, 250)
        await aggregator.accumulate(4, 10, 50)

        top = await aggregator.top(10)
        # Ties keep the earlier achiever first
        assert [e.user_id for e in top] == [2, 1, 3, 4]
        assert await aggregator.rank(2, 10) == 1
        assert await aggregator.rank(1, 10) == 2
        assert await aggregator.rank(3, 10) == 2
        assert await aggregator.rank(4, 10) == 4
        assert await aggregator.rank(99, 10) is None

    async def test_ranked_top_shares_ranks_between_ties(self) -> None:
        aggregator = LeaderboardAggregator(MemoryStore(), clock=StepClock())
        for user_id, score in [(1, 250), (2, 400), (3, 250), (4, 50), (5, 250)]:
            await aggregator.accumulate(user_id, 10, score)

        ranked = [(rank, e.user_id) for rank, e in await aggregator.ranked_top(10)]
        assert ranked == [(1, 2), (2, 1), (2, 3), (2, 5), (5, 4)]
        for rank, user_id in ranked:
            assert await aggregator.rank(user_id, 10) == rank

    async def test_competition_ranks_of_nothing(self) -> None:
        assert list(competition_ranks([])) == []

    async def test_top_limit(self) -> None:
        aggregator = LeaderboardAggregator(MemoryStore())
        for user_id in range(1, 6):
            await aggregator.accumulate(user_id, 10, user_id * 10)
        assert [e.user_id for e in await aggregator.top(10, limit=2)] == [5, 4]
