"""Lookup of supported games by id."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from questproof.errors import UnsupportedGame
from questproof.games.base import GameRules
from questproof.games.counter_strike import CounterStrikeRules
from questproof.games.league import LeagueOfLegendsRules
from questproof.games.valorant import ValorantRules


class GameRegistry:
    """Maps game ids to their rules."""

    def __init__(self, rules: Iterable[GameRules] = ()) -> None:
        self._rules: dict[str, GameRules] = {}
        for r in rules:
            self.register(r)

    def register(self, rules: GameRules) -> None:
        self._rules[rules.game_id] = rules

    def get(self, game: str) -> GameRules:
        try:
            return self._rules[game]
        except KeyError:
            raise UnsupportedGame(f"Unsupported game: {game}") from None

    def __contains__(self, game: object) -> bool:
        return game in self._rules

    def __iter__(self) -> Iterator[GameRules]:
        return iter(self._rules.values())

    def ids(self) -> list[str]:
        return list(self._rules)


def default_registry() -> GameRegistry:
    return GameRegistry([LeagueOfLegendsRules(), ValorantRules(), CounterStrikeRules()])
