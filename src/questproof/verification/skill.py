"""Skill tier classification.

Score = base (rank table) + within-tier bonus (capped) + modifiers
(each clamped). Tier boundaries are shared with quest scoring through
the tier point table.
"""

from __future__ import annotations

import enum
import operator
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from questproof.games import GameRegistry

MAX_WITHIN_TIER = 100.0
# No single modifier may move a player across more than one tier
MAX_MODIFIER = 50.0


class SkillTier(str, enum.Enum):
    """Tiers compare by rank, not alphabetically. Tier-valued strings are accepted."""

    NOVICE = "Novice"
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    INTERMEDIATE_PLUS = "Intermediate+"
    ADVANCED = "Advanced"
    EXPERT = "Expert"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)

    def _compare(self, other: object, op: Callable[[int, int], bool]) -> bool:
        if isinstance(other, str) and not isinstance(other, SkillTier):
            other = SkillTier(other)
        if not isinstance(other, SkillTier):
            return NotImplemented
        return op(self.rank, other.rank)

    # str supplies all four, so each must be replaced
    def __lt__(self, other: object) -> bool:
        return self._compare(other, operator.lt)

    def __le__(self, other: object) -> bool:
        return self._compare(other, operator.le)

    def __gt__(self, other: object) -> bool:
        return self._compare(other, operator.gt)

    def __ge__(self, other: object) -> bool:
        return self._compare(other, operator.ge)


_ORDER = list(SkillTier)

# (minimum score, tier), highest first
TIER_BOUNDARIES: list[tuple[float, SkillTier]] = [
    (1600, SkillTier.EXPERT),
    (1200, SkillTier.ADVANCED),
    (800, SkillTier.INTERMEDIATE_PLUS),
    (400, SkillTier.INTERMEDIATE),
    (100, SkillTier.BEGINNER),
]

DEFAULT_TIER_POINTS: dict[str, int] = {
    "Novice": 50,
    "Beginner": 100,
    "Intermediate": 250,
    "Intermediate+": 400,
    "Advanced": 600,
    "Expert": 1000,
}


def tier_for_score(score: float) -> SkillTier:
    for minimum, tier in TIER_BOUNDARIES:
        if score >= minimum:
            return tier
    return SkillTier.NOVICE


def _clamp(value: float, bound: float) -> float:
    return max(-bound, min(bound, value))


@dataclass(frozen=True)
class SkillAssessment:
    tier: SkillTier
    score: float
    base: float
    within_tier: float
    modifiers: dict[str, float] = field(default_factory=dict)


class SkillAssessmentEngine:
    def __init__(self, registry: GameRegistry, tier_points: Mapping[str, int] | None = None) -> None:
        self.registry = registry
        self.tier_points = dict(tier_points or DEFAULT_TIER_POINTS)
        missing = {t.value for t in SkillTier} - set(self.tier_points)
        if missing:
            raise ValueError(f"tier point table is missing {sorted(missing)}")

    def assess(self, game: str, stats: Mapping[str, Any]) -> SkillAssessment:
        rules = self.registry.get(game)
        components = rules.skill_components(rules.parse(stats))
        within = min(max(components.within_tier, 0.0), MAX_WITHIN_TIER)
        modifiers = {name: _clamp(v, MAX_MODIFIER) for name, v in components.modifiers.items()}
        score = components.base + within + sum(modifiers.values())
        return SkillAssessment(
            tier=tier_for_score(score),
            score=score,
            base=components.base,
            within_tier=within,
            modifiers=modifiers,
        )

    def classify(self, game: str, stats: Mapping[str, Any]) -> SkillTier:
        return self.assess(game, stats).tier

    def points(self, tier: SkillTier | str) -> int:
        return self.tier_points[SkillTier(tier).value]
