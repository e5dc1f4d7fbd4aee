"""Unit tests for skill tier classification."""

from __future__ import annotations

from typing import Any

import pytest
from conftest import CS_CLEAN, LOL_CLEAN, LOL_REVIEW, VALORANT_CLEAN

from questproof.games import GameRegistry, SkillComponents, default_registry
from questproof.games.league import LeagueOfLegendsRules
from questproof.verification.skill import (
    DEFAULT_TIER_POINTS,
    SkillAssessmentEngine,
    SkillTier,
    tier_for_score,
)


class InflatedRules(LeagueOfLegendsRules):
    """League rules that report out-of-range components."""

    def skill_components(self, stats: Any) -> SkillComponents:  # noqa: ANN401
        return SkillComponents(base=600, within_tier=500, modifiers={"kda": 300, "win_rate": -300})


class TestTierBoundaries:
    @pytest.mark.parametrize(
        ("score", "tier"),
        [
            (0, SkillTier.NOVICE),
            (99.9, SkillTier.NOVICE),
            (100, SkillTier.BEGINNER),
            (399, SkillTier.BEGINNER),
            (400, SkillTier.INTERMEDIATE),
            (799, SkillTier.INTERMEDIATE),
            (800, SkillTier.INTERMEDIATE_PLUS),
            (1200, SkillTier.ADVANCED),
            (1599, SkillTier.ADVANCED),
            (1600, SkillTier.EXPERT),
            (2500, SkillTier.EXPERT),
        ],
    )
    def test_tier_for_score(self, score: float, tier: SkillTier) -> None:
        assert tier_for_score(score) == tier

    def test_tiers_are_ordered(self) -> None:
        assert SkillTier.NOVICE < SkillTier.BEGINNER < SkillTier.EXPERT
        assert sorted([SkillTier.EXPERT, SkillTier.NOVICE, SkillTier.ADVANCED]) == [
            SkillTier.NOVICE, SkillTier.ADVANCED, SkillTier.EXPERT,
        ]

    def test_every_comparison_uses_rank(self) -> None:
        # Alphabetically "Expert" < "Novice" and "Advanced" < "Beginner"
        assert SkillTier.EXPERT > SkillTier.NOVICE
        assert SkillTier.ADVANCED >= SkillTier.BEGINNER
        assert SkillTier.BEGINNER <= SkillTier.ADVANCED
        assert SkillTier.INTERMEDIATE_PLUS > SkillTier.INTERMEDIATE
        assert SkillTier.EXPERT >= SkillTier.EXPERT
        assert max(SkillTier.NOVICE, SkillTier.EXPERT, SkillTier.ADVANCED) is SkillTier.EXPERT
        assert min(list(SkillTier)) is SkillTier.NOVICE
        assert sorted(SkillTier, reverse=True)[0] is SkillTier.EXPERT

    def test_tier_strings_compare_by_rank(self) -> None:
        assert SkillTier.EXPERT > "Novice"
        assert SkillTier.BEGINNER < "Advanced"
        with pytest.raises(ValueError):
            SkillTier.NOVICE < "Grandmaster"  # noqa: B015


class TestAssess:
    def test_league(self) -> None:
        result = SkillAssessmentEngine(default_registry()).assess("league_of_legends", LOL_CLEAN)
        # GOLD 600 + division II 50 + 40 LP 10 + KDA 30
        assert result.base == 600
        assert result.within_tier == 60
        assert result.modifiers == {"kda": 30}
        assert result.score == 690
        assert result.tier == SkillTier.INTERMEDIATE

    def test_league_low_tier(self) -> None:
        result = SkillAssessmentEngine(default_registry()).assess("league_of_legends", LOL_REVIEW)
        assert result.score == 305
        assert result.tier == SkillTier.BEGINNER

    def test_valorant(self) -> None:
        result = SkillAssessmentEngine(default_registry()).assess("valorant", VALORANT_CLEAN)
        # Gold 900 + division 2 (25) + 50 RR (25)
        assert result.score == 950
        assert result.tier == SkillTier.INTERMEDIATE_PLUS

    def test_counter_strike(self) -> None:
        result = SkillAssessmentEngine(default_registry()).assess("counter_strike", CS_CLEAN)
        assert result.score == 800
        assert result.tier == SkillTier.INTERMEDIATE_PLUS

    def test_unranked_account_is_novice(self) -> None:
        stats = {"summoner_level": 40}
        assert SkillAssessmentEngine(default_registry()).classify("league_of_legends", stats) == SkillTier.NOVICE

    def test_components_are_clamped(self) -> None:
        engine = SkillAssessmentEngine(GameRegistry([InflatedRules()]))
        result = engine.assess("league_of_legends", LOL_CLEAN)
        assert result.within_tier == 100
        assert result.modifiers == {"kda": 50, "win_rate": -50}
        assert result.score == 700


class TestTierPoints:
    def test_default_points(self) -> None:
        engine = SkillAssessmentEngine(default_registry())
        assert engine.points("Expert") == 1000
        assert engine.points(SkillTier.INTERMEDIATE) == 250

    def test_points_grow_with_tier(self) -> None:
        values = [DEFAULT_TIER_POINTS[t.value] for t in SkillTier]
        assert values == sorted(values)

    def test_incomplete_table_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="Expert"):
            SkillAssessmentEngine(default_registry(), {"Novice": 1})
