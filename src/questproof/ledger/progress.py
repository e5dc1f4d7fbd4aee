"""Quest progress state machine.

not_started -> in_progress -> completed -> verified, forward only.
Abandonment resets in_progress/completed to not_started; verified
progress can only be downgraded by revoking its proof.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime

from questproof.errors import InvalidProgressTransition
from questproof.ledger.leaderboard import LeaderboardAggregator
from questproof.store import LeaderboardRecord, ProgressRecord, ProgressStatus, UnitOfWork

logger = logging.getLogger(__name__)

NOT_STARTED = ProgressStatus.NOT_STARTED
IN_PROGRESS = ProgressStatus.IN_PROGRESS
COMPLETED = ProgressStatus.COMPLETED
VERIFIED = ProgressStatus.VERIFIED

VALID_TRANSITIONS: dict[ProgressStatus, list[ProgressStatus]] = {
    NOT_STARTED: [IN_PROGRESS, COMPLETED, VERIFIED],
    IN_PROGRESS: [COMPLETED, VERIFIED, NOT_STARTED],
    COMPLETED: [VERIFIED, NOT_STARTED],
    VERIFIED: [],
}


def validate_transition(current: ProgressStatus, target: ProgressStatus) -> None:
    """Raise InvalidProgressTransition unless current -> target is allowed. Staying put is allowed."""
    if current == target:
        return
    valid = VALID_TRANSITIONS.get(current, [])
    if target not in valid:
        raise InvalidProgressTransition(
            f"Invalid transition: {current.value} -> {target.value}. "
            f"Valid transitions: {[s.value for s in valid]}"
        )


class ProgressLedger:
    """Applies verification outcomes to quest progress. Every method runs inside the caller's unit of work."""

    def __init__(self, leaderboard: LeaderboardAggregator, tier_points: Mapping[str, int]) -> None:
        self.leaderboard = leaderboard
        self.tier_points = dict(tier_points)

    async def _load(self, uow: UnitOfWork, user_id: int, quest_id: int) -> ProgressRecord:
        return await uow.get_progress(user_id, quest_id) or ProgressRecord(user_id=user_id, quest_id=quest_id)

    async def apply_score(
        self,
        uow: UnitOfWork,
        user_id: int,
        quest_id: int,
        world_id: int,
        skill_tier: str,
        at: datetime,
    ) -> tuple[ProgressRecord, LeaderboardRecord]:
        """Mark the quest verified, keep the best score, credit the world leaderboard."""
        points = self.tier_points[skill_tier]
        progress = await self._load(uow, user_id, quest_id)
        validate_transition(progress.status, VERIFIED)

        progress.status = VERIFIED
        progress.score = max(progress.score, points)
        progress.completed_at = progress.completed_at or at
        await uow.save_progress(progress)

        entry = await self.leaderboard.accumulate(user_id, world_id, points, uow=uow)
        logger.info("Quest %s verified for user %s (%s, +%d)", quest_id, user_id, skill_tier, points)
        return progress, entry

    async def mark_in_progress(self, uow: UnitOfWork, user_id: int, quest_id: int) -> ProgressRecord:
        """Held for review: start the quest if needed, never move it backwards."""
        progress = await self._load(uow, user_id, quest_id)
        if progress.status == NOT_STARTED:
            progress.status = IN_PROGRESS
            await uow.save_progress(progress)
        return progress

    async def revoke(self, uow: UnitOfWork, user_id: int, quest_id: int) -> ProgressRecord | None:
        """Downgrade verified progress to completed after its proof lost verification."""
        progress = await uow.get_progress(user_id, quest_id)
        if progress is None or progress.status != VERIFIED:
            return progress
        progress.status = COMPLETED
        await uow.save_progress(progress)
        logger.warning("Quest %s verification revoked for user %s", quest_id, user_id)
        return progress

    async def abandon(self, uow: UnitOfWork, user_id: int, quest_id: int) -> ProgressRecord:
        progress = await self._load(uow, user_id, quest_id)
        if progress.status not in (IN_PROGRESS, COMPLETED):
            raise InvalidProgressTransition(
                f"Cannot abandon a quest that is {progress.status.value}"
            )
        validate_transition(progress.status, NOT_STARTED)
        progress.status = NOT_STARTED
        progress.completed_at = None
        await uow.save_progress(progress)
        return progress
