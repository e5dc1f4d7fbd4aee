"""Unit tests for per-game rules and the registry."""

from __future__ import annotations

import pytest

from questproof.errors import UnsupportedGame
from questproof.games import default_registry
from questproof.games.counter_strike import performance_base
from questproof.games.valorant import split_tier


class TestAccountFormat:
    @pytest.mark.parametrize(
        ("game", "account", "valid"),
        [
            ("league_of_legends", "Faker", True),
            ("league_of_legends", "Hide on bush", True),
            ("league_of_legends", "ab", False),
            ("league_of_legends", "a" * 17, False),
            ("league_of_legends", "bad_name!", False),
            ("valorant", "Player#1234", True),
            ("valorant", "Player One#EUW", True),
            ("valorant", "Player1234", False),
            ("valorant", "Player#12", False),
            ("valorant", "Player#123456", False),
            ("counter_strike", "76561198000000001", True),
            ("counter_strike", "7656119800000000", False),
            ("counter_strike", "765611980000000012", False),
            ("counter_strike", "abc", False),
        ],
    )
    def test_formats(self, game: str, account: str, valid: bool) -> None:
        assert default_registry().get(game).validate_account_format(account) is valid


class TestRegistry:
    def test_supported_games(self) -> None:
        registry = default_registry()
        assert registry.ids() == ["league_of_legends", "valorant", "counter_strike"]
        assert "valorant" in registry
        assert "fortnite" not in registry

    def test_unknown_game(self) -> None:
        with pytest.raises(UnsupportedGame, match="fortnite"):
            default_registry().get("fortnite")

    def test_describe(self) -> None:
        info = default_registry().get("counter_strike").describe()
        assert info == {
            "id": "counter_strike",
            "name": "Counter-Strike 2",
            "api_source": "https://api.steampowered.com",
            "required_stats": ["kills", "deaths", "kdr", "wins"],
            "account_format": "17-digit Steam ID",
        }

    def test_every_game_declares_an_upstream_quota(self) -> None:
        for rules in default_registry():
            requests, window = rules.upstream_quota
            assert requests > 0 and window > 0


class TestParsing:
    def test_missing_sections_default(self) -> None:
        parsed = default_registry().get("league_of_legends").parse({"summoner_level": 12})
        assert parsed.solo_queue.tier == "UNRANKED"
        assert not parsed.solo_queue.ranked

    @pytest.mark.parametrize(
        ("patched", "expected"),
        [("Gold 2", ("Gold", 2)), ("diamond 3", ("Diamond", 3)), ("Radiant", ("Radiant", 1)), ("", ("Unranked", 1))],
    )
    def test_split_tier(self, patched: str, expected: tuple[str, int]) -> None:
        assert split_tier(patched) == expected

    @pytest.mark.parametrize(
        ("kdr", "win_rate", "base"),
        [(1.6, 61, 1700), (1.3, 56, 1400), (1.1, 51, 1100), (0.9, 46, 800), (0.7, 30, 500), (0.5, 70, 200)],
    )
    def test_counter_strike_ladder(self, kdr: float, win_rate: float, base: int) -> None:
        assert performance_base(kdr, win_rate) == base
