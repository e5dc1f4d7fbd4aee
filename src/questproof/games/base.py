"""Game rules capability interface.

A ``GameRules`` subclass owns everything that differs between games:
account format, how raw provider stats are parsed, which fraud signals
trip, and how stats map onto a skill score. The orchestrator and the
engines only ever talk to this interface.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel


@dataclass(frozen=True)
class Signal:
    """One fraud contribution. A weight without a flag is not allowed."""

    name: str
    weight: int
    flag: str

    def __post_init__(self) -> None:
        if self.weight <= 0:
            raise ValueError(f"Signal {self.name!r} must carry a positive weight")
        if not self.flag:
            raise ValueError(f"Signal {self.name!r} must carry an explanatory flag")


@dataclass(frozen=True)
class SkillComponents:
    """Raw inputs to the skill score, before the engine applies bounds."""

    base: float
    within_tier: float = 0.0
    modifiers: dict[str, float] = field(default_factory=dict)


class GameRules(ABC):
    """Rules for one supported game."""

    game_id: ClassVar[str]
    name: ClassVar[str]
    api_source: ClassVar[str]
    required_stats: ClassVar[tuple[str, ...]]
    account_pattern: ClassVar[re.Pattern[str]]
    account_format_hint: ClassVar[str]
    # (requests, window seconds) allowed against the publisher API
    upstream_quota: ClassVar[tuple[int, int]]
    # dotted stat paths that only ever grow between two fetches
    cumulative_fields: ClassVar[frozenset[str]] = frozenset()
    stats_model: ClassVar[type[BaseModel]]

    def validate_account_format(self, account: str) -> bool:
        return bool(self.account_pattern.fullmatch(account))

    def parse(self, stats: Mapping[str, Any]) -> Any:  # noqa: ANN401
        """Parse raw provider stats into the game's typed model."""
        return self.stats_model.model_validate(dict(stats))

    @abstractmethod
    def implausible_performance(self, stats: Any) -> list[Signal]:  # noqa: ANN401
        """Rates or ratios beyond what legitimate play produces."""

    @abstractmethod
    def internal_consistency(self, stats: Any) -> list[Signal]:  # noqa: ANN401
        """Derived metrics that contradict the raw counts or the rank."""

    @abstractmethod
    def account_credibility(self, stats: Any, as_of: datetime) -> list[Signal]:  # noqa: ANN401
        """Young or low-level accounts holding a high competitive rank."""

    @abstractmethod
    def skill_components(self, stats: Any) -> SkillComponents:  # noqa: ANN401
        """Base, within-tier bonus and modifiers for the skill score."""

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.game_id,
            "name": self.name,
            "api_source": self.api_source,
            "required_stats": list(self.required_stats),
            "account_format": self.account_format_hint,
        }
