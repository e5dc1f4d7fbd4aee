"""League of Legends rules (Riot API stats)."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, Field

from questproof.games.base import GameRules, Signal, SkillComponents

# Tier → skill score floor
TIER_BASE: dict[str, int] = {
    "IRON": 0,
    "BRONZE": 200,
    "SILVER": 400,
    "GOLD": 600,
    "PLATINUM": 800,
    "DIAMOND": 1000,
    "MASTER": 1200,
    "GRANDMASTER": 1400,
    "CHALLENGER": 1600,
}

DIVISION_BONUS: dict[str, int] = {"I": 75, "II": 50, "III": 25, "IV": 0}

APEX_TIERS = frozenset({"MASTER", "GRANDMASTER", "CHALLENGER"})
LOW_TIERS = frozenset({"IRON", "BRONZE"})

# Below this many ranked games a win rate says nothing
MEANINGFUL_SAMPLE = 50


class QueueStats(BaseModel):
    tier: str = "UNRANKED"
    rank: str = ""
    league_points: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0

    @property
    def games(self) -> int:
        return self.wins + self.losses

    @property
    def ranked(self) -> bool:
        return self.tier.upper() in TIER_BASE


class RecentPerformance(BaseModel):
    average_kda: float = 0.0
    win_rate: float | None = None
    most_played_role: str | None = None
    average_damage: float = 0.0
    vision_score: float = 0.0


class LeagueStats(BaseModel):
    summoner_level: int = 0
    solo_queue: QueueStats = Field(default_factory=QueueStats)
    flex_queue: QueueStats = Field(default_factory=QueueStats)
    recent_performance: RecentPerformance = Field(default_factory=RecentPerformance)


class LeagueOfLegendsRules(GameRules):
    game_id = "league_of_legends"
    name = "League of Legends"
    api_source = "https://na1.api.riotgames.com"
    required_stats = ("rank", "winRate", "kda")
    account_pattern = re.compile(r"[a-zA-Z0-9 ]{3,16}")
    account_format_hint = "Summoner Name (3-16 characters)"
    upstream_quota = (100, 120)
    cumulative_fields = frozenset({
        "summoner_level",
        "solo_queue.wins",
        "solo_queue.losses",
        "flex_queue.wins",
        "flex_queue.losses",
    })
    stats_model = LeagueStats

    def implausible_performance(self, stats: LeagueStats) -> list[Signal]:
        solo = stats.solo_queue
        signals = []
        if solo.win_rate > 95 and solo.games > MEANINGFUL_SAMPLE:
            signals.append(Signal(
                "implausible_win_rate", 40,
                f"Impossibly high win rate ({solo.win_rate:.1f}% over {solo.games} games)",
            ))
        return signals

    def internal_consistency(self, stats: LeagueStats) -> list[Signal]:
        solo = stats.solo_queue
        tier = solo.tier.upper()
        signals = []

        if stats.recent_performance.average_kda > 4.0 and tier in LOW_TIERS:
            signals.append(Signal("kda_rank_mismatch", 30, "KDA inconsistent with rank"))

        # A season of sustained dominance is inconsistent with any placement
        if solo.win_rate > 90 and solo.games > MEANINGFUL_SAMPLE:
            if not solo.ranked:
                signals.append(Signal(
                    "unplaced_ranked_record", 30, "Ranked record without a tier placement",
                ))
            elif tier in APEX_TIERS:
                signals.append(Signal(
                    "apex_win_rate", 30, "Win rate unsustainable against apex-tier opponents",
                ))
            else:
                signals.append(Signal(
                    "win_rate_tier_mismatch", 30, "Win rate inconsistent with tier placement",
                ))

        if solo.games > 0:
            recomputed = solo.wins / solo.games * 100
            if abs(recomputed - solo.win_rate) > 2:
                signals.append(Signal(
                    "win_rate_record_mismatch", 30,
                    "Reported win rate does not match wins and losses",
                ))
        return signals

    def account_credibility(self, stats: LeagueStats, as_of: datetime) -> list[Signal]:
        if stats.summoner_level < 50 and stats.solo_queue.ranked:
            return [Signal("low_level_ranked", 25, "Low level account with ranked stats")]
        return []

    def skill_components(self, stats: LeagueStats) -> SkillComponents:
        solo = stats.solo_queue
        tier = solo.tier.upper()
        base = TIER_BASE.get(tier, 0)
        within = 0.0
        if tier in TIER_BASE:
            within = DIVISION_BONUS.get(solo.rank.upper(), 0) + min(solo.league_points / 100 * 25, 25)

        modifiers: dict[str, float] = {}
        recent = stats.recent_performance
        win_rate = recent.win_rate if recent.win_rate is not None else (solo.win_rate if solo.games else None)
        if win_rate is not None:
            if win_rate > 60:
                modifiers["win_rate"] = 50
            elif win_rate < 45:
                modifiers["win_rate"] = -30

        if recent.average_kda > 2.0:
            modifiers["kda"] = 30
        elif 0 < recent.average_kda < 1.0:
            modifiers["kda"] = -20

        return SkillComponents(base=base, within_tier=within, modifiers=modifiers)
