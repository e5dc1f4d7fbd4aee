"""Fraud detection engine: sums independent signals into a 0-100 risk score."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from questproof.games import GameRegistry, Signal
from questproof.store import VerificationStore

logger = logging.getLogger(__name__)

MAX_RISK = 100


class RiskBand(str, enum.Enum):
    LOW = "low"
    REVIEW = "review"
    HIGH = "high"


def risk_band(score: int, review_threshold: int = 50, reject_threshold: int = 70) -> RiskBand:
    """[0, review) low, [review, reject) review, [reject, 100] high."""
    if score >= reject_threshold:
        return RiskBand.HIGH
    if score >= review_threshold:
        return RiskBand.REVIEW
    return RiskBand.LOW


@dataclass(frozen=True)
class FraudAssessment:
    score: int
    signals: tuple[Signal, ...] = ()
    flags: list[str] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FraudDetectionEngine:
    """Scores stats plus the user's recent attempt volume.

    Per-game signals are pure functions of the stats. The behavioural
    signal reads the attempt history, so identical stats can score
    differently over time; the flag always says why.
    """

    def __init__(
        self,
        registry: GameRegistry,
        store: VerificationStore,
        *,
        behavior_attempt_threshold: int = 5,
        behavior_window: timedelta = timedelta(hours=24),
        behavior_weight: int = 20,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.registry = registry
        self.store = store
        self.behavior_attempt_threshold = behavior_attempt_threshold
        self.behavior_window = behavior_window
        self.behavior_weight = behavior_weight
        self._clock = clock

    def stat_signals(self, game: str, stats: Mapping[str, Any], as_of: datetime | None = None) -> list[Signal]:
        """Deterministic per-game signals."""
        rules = self.registry.get(game)
        parsed = rules.parse(stats)
        return [
            *rules.implausible_performance(parsed),
            *rules.internal_consistency(parsed),
            *rules.account_credibility(parsed, as_of or self._clock()),
        ]

    async def behavior_signals(self, user_id: int) -> list[Signal]:
        since = self._clock() - self.behavior_window
        async with self.store.unit_of_work() as uow:
            attempts = await uow.count_attempts(user_id, since)
        if attempts > self.behavior_attempt_threshold:
            return [Signal(
                "verification_farming", self.behavior_weight,
                f"Excessive verification attempts ({attempts} in {self._window_label()})",
            )]
        return []

    async def score(
        self,
        game: str,
        account: str,
        stats: Mapping[str, Any],
        user_id: int,
    ) -> FraudAssessment:
        signals = [*self.stat_signals(game, stats), *await self.behavior_signals(user_id)]
        total = min(sum(s.weight for s in signals), MAX_RISK)
        if signals:
            logger.info(
                "Fraud signals for user %s on %s (%s...): %s -> %d",
                user_id, game, account[:8], [s.name for s in signals], total,
            )
        return FraudAssessment(score=total, signals=tuple(signals), flags=[s.flag for s in signals])

    def _window_label(self) -> str:
        hours = self.behavior_window.total_seconds() / 3600
        return f"{hours:g}h"
