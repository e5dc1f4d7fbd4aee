"""Valorant rules (HenrikDev API stats)."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, Field

from questproof.games.base import GameRules, Signal, SkillComponents

TIER_BASE: dict[str, int] = {
    "Iron": 0,
    "Bronze": 300,
    "Silver": 600,
    "Gold": 900,
    "Platinum": 1200,
    "Diamond": 1500,
    "Ascendant": 1800,
    "Immortal": 2100,
    "Radiant": 2400,
}

LOW_TIERS = frozenset({"Iron", "Bronze"})


def split_tier(patched: str) -> tuple[str, int]:
    """'Gold 2' -> ('Gold', 2). Unknown or unranked tiers keep division 1."""
    parts = patched.split()
    if not parts:
        return "Unranked", 1
    name = parts[0].capitalize()
    division = 1
    if len(parts) > 1 and parts[1].isdigit():
        division = int(parts[1])
    return name, division


class CurrentRank(BaseModel):
    tier: str = "Unranked"
    rr: int = 0
    mmr: int = 0


class PeakRank(BaseModel):
    tier: str = "N/A"
    season: str = "N/A"


class RecentPerformance(BaseModel):
    average_score: float = 0.0
    kdr: float = 0.0
    head_shot_percentage: float = 0.0
    win_rate: float = 0.0
    most_played_agent: str = "Unknown"
    average_damage: float = 0.0


class ValorantStats(BaseModel):
    account_level: int = 0
    current_rank: CurrentRank = Field(default_factory=CurrentRank)
    peak_rank: PeakRank = Field(default_factory=PeakRank)
    recent_performance: RecentPerformance = Field(default_factory=RecentPerformance)


class ValorantRules(GameRules):
    game_id = "valorant"
    name = "Valorant"
    api_source = "https://api.henrikdev.xyz/valorant"
    required_stats = ("rank", "rr", "peakRank")
    account_pattern = re.compile(r"[a-zA-Z0-9 ]{3,16}#[a-zA-Z0-9]{3,5}")
    account_format_hint = "Name#Tag (e.g., Player#1234)"
    upstream_quota = (60, 60)
    cumulative_fields = frozenset({"account_level"})
    stats_model = ValorantStats

    def implausible_performance(self, stats: ValorantStats) -> list[Signal]:
        hs_rate = stats.recent_performance.head_shot_percentage
        if hs_rate > 60:
            return [Signal("implausible_headshot_rate", 35, f"Unusually high headshot rate ({hs_rate:.1f}%)")]
        return []

    def internal_consistency(self, stats: ValorantStats) -> list[Signal]:
        signals = []
        current, _ = split_tier(stats.current_rank.tier)
        if stats.recent_performance.kdr > 2.5 and current in LOW_TIERS:
            signals.append(Signal(
                "kdr_rank_mismatch", 30, "Recent performance inconsistent with rank",
            ))

        peak, _ = split_tier(stats.peak_rank.tier)
        if current in TIER_BASE and peak in TIER_BASE and TIER_BASE[current] > TIER_BASE[peak]:
            signals.append(Signal(
                "rank_above_peak", 30, "Current rank exceeds recorded peak rank",
            ))
        return signals

    def account_credibility(self, stats: ValorantStats, as_of: datetime) -> list[Signal]:
        current, _ = split_tier(stats.current_rank.tier)
        if stats.account_level < 20 and current in TIER_BASE:
            return [Signal("low_level_ranked", 25, "Low level account with competitive rank")]
        return []

    def skill_components(self, stats: ValorantStats) -> SkillComponents:
        tier, division = split_tier(stats.current_rank.tier)
        base = TIER_BASE.get(tier, 0)
        within = 0.0
        if tier in TIER_BASE:
            within = (max(division, 1) - 1) * 25 + min(max(stats.current_rank.rr, 0), 100) * 0.5

        modifiers: dict[str, float] = {}
        recent = stats.recent_performance
        if recent.kdr > 1.2:
            modifiers["kdr"] = 40
        elif 0 < recent.kdr < 0.8:
            modifiers["kdr"] = -30
        if recent.head_shot_percentage > 25:
            modifiers["headshots"] = 30

        return SkillComponents(base=base, within_tier=within, modifiers=modifiers)
