"""World leaderboard accumulation.

Scores only ever grow: every contribution is added to the running total
with a single atomic increment in the store, so concurrent contributions
for the same (user, world) are never lost.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime, timezone

from questproof.store import LeaderboardRecord, UnitOfWork, VerificationStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def competition_ranks(entries: Iterable[LeaderboardRecord]) -> Iterator[tuple[int, LeaderboardRecord]]:
    """Rank score-ordered entries so ties share a rank and the next rank skips (1, 2, 2, 4).

    Agrees with the store's ``leaderboard_rank``: one more than the entries strictly ahead.
    """
    rank = 0
    previous: int | None = None
    for position, entry in enumerate(entries, start=1):
        if entry.score != previous:
            rank, previous = position, entry.score
        yield rank, entry


class LeaderboardAggregator:
    def __init__(self, store: VerificationStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self.store = store
        self._clock = clock

    async def accumulate(
        self,
        user_id: int,
        world_id: int,
        delta: int,
        uow: UnitOfWork | None = None,
    ) -> LeaderboardRecord:
        """Add ``delta`` to the user's world total, inside ``uow`` when one is given."""
        if delta < 0:
            raise ValueError(f"Leaderboard contributions must be non-negative, got {delta}")
        if uow is not None:
            return await self._apply(uow, user_id, world_id, delta)
        async with self.store.unit_of_work() as own:
            return await self._apply(own, user_id, world_id, delta)

    async def _apply(self, uow: UnitOfWork, user_id: int, world_id: int, delta: int) -> LeaderboardRecord:
        entry = await uow.increment_leaderboard(user_id, world_id, delta, self._clock())
        logger.debug("Leaderboard world=%s user=%s +%d -> %d", world_id, user_id, delta, entry.score)
        return entry

    async def top(self, world_id: int, limit: int = 50) -> list[LeaderboardRecord]:
        async with self.store.unit_of_work() as uow:
            return await uow.top_leaderboard(world_id, limit)

    async def ranked_top(self, world_id: int, limit: int = 50) -> list[tuple[int, LeaderboardRecord]]:
        return list(competition_ranks(await self.top(world_id, limit)))

    async def entry(self, user_id: int, world_id: int) -> LeaderboardRecord | None:
        async with self.store.unit_of_work() as uow:
            return await uow.get_leaderboard_entry(user_id, world_id)

    async def rank(self, user_id: int, world_id: int) -> int | None:
        async with self.store.unit_of_work() as uow:
            return await uow.leaderboard_rank(user_id, world_id)
