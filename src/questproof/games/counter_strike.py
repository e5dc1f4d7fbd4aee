"""Counter-Strike 2 rules (Steam Web API stats)."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field

from questproof.games.base import GameRules, Signal, SkillComponents

NEW_ACCOUNT_AGE = timedelta(days=90)
SUPREME_BASE = 1400


class PlayerInfo(BaseModel):
    steam_id: str = ""
    persona_name: str = ""
    account_created: datetime | None = None


class Combat(BaseModel):
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    kdr: float = 0.0
    kda: float = 0.0
    head_shot_percentage: float = 0.0


class Matches(BaseModel):
    wins: int = 0
    total_rounds: int = 0
    win_rate: float = 0.0


class Objectives(BaseModel):
    bombs_planted: int = 0
    bombs_defused: int = 0
    utility_score: int = 0


class CounterStrikeStats(BaseModel):
    player_info: PlayerInfo = Field(default_factory=PlayerInfo)
    combat: Combat = Field(default_factory=Combat)
    matches: Matches = Field(default_factory=Matches)
    objectives: Objectives = Field(default_factory=Objectives)


def performance_base(kdr: float, win_rate: float) -> int:
    """CS2 exposes no rank, so the ladder is inferred from K/D and round win rate."""
    if kdr > 1.5 and win_rate > 60:
        return 1700  # Global Elite
    if kdr > 1.2 and win_rate > 55:
        return SUPREME_BASE
    if kdr > 1.0 and win_rate > 50:
        return 1100  # Legendary Eagle
    if kdr > 0.8 and win_rate > 45:
        return 800  # Master Guardian
    if kdr > 0.6:
        return 500  # Gold Nova
    return 200  # Silver


class CounterStrikeRules(GameRules):
    game_id = "counter_strike"
    name = "Counter-Strike 2"
    api_source = "https://api.steampowered.com"
    required_stats = ("kills", "deaths", "kdr", "wins")
    account_pattern = re.compile(r"\d{17}")
    account_format_hint = "17-digit Steam ID"
    upstream_quota = (200, 300)
    cumulative_fields = frozenset({
        "combat.kills",
        "combat.deaths",
        "combat.assists",
        "matches.wins",
        "matches.total_rounds",
        "objectives.bombs_planted",
        "objectives.bombs_defused",
    })
    stats_model = CounterStrikeStats

    def implausible_performance(self, stats: CounterStrikeStats) -> list[Signal]:
        combat = stats.combat
        if combat.kdr > 3.0 and combat.head_shot_percentage > 70:
            return [Signal("professional_band", 50, "Professional-level stats detected")]
        return []

    def internal_consistency(self, stats: CounterStrikeStats) -> list[Signal]:
        combat = stats.combat
        signals = []
        recomputed = combat.kills / max(combat.deaths, 1)
        if abs(recomputed - combat.kdr) > 0.05:
            signals.append(Signal(
                "kdr_record_mismatch", 30, "Reported K/D does not match kill and death totals",
            ))
        if stats.matches.wins > stats.matches.total_rounds:
            signals.append(Signal("wins_exceed_rounds", 30, "More wins than rounds played"))
        return signals

    def account_credibility(self, stats: CounterStrikeStats, as_of: datetime) -> list[Signal]:
        created = stats.player_info.account_created
        if created is None:
            return []
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        young = as_of - created < NEW_ACCOUNT_AGE
        if young and performance_base(stats.combat.kdr, stats.matches.win_rate) >= SUPREME_BASE:
            return [Signal("new_account_elite_stats", 25, "New account with elite-level stats")]
        return []

    def skill_components(self, stats: CounterStrikeStats) -> SkillComponents:
        combat = stats.combat
        base = performance_base(combat.kdr, stats.matches.win_rate)

        modifiers: dict[str, float] = {}
        if combat.head_shot_percentage > 50:
            modifiers["headshots"] = 50
        elif combat.head_shot_percentage > 40:
            modifiers["headshots"] = 25
        if stats.objectives.utility_score > 100:
            modifiers["utility"] = 50

        return SkillComponents(base=base, modifiers=modifiers)
