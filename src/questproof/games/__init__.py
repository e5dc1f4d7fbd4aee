"""Per-game verification rules."""

from questproof.games.base import GameRules, Signal, SkillComponents
from questproof.games.registry import GameRegistry, default_registry

__all__ = ["GameRegistry", "GameRules", "Signal", "SkillComponents", "default_registry"]
