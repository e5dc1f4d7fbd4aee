"""Game statistics providers.

A provider is the boundary to a publisher API. It returns raw stats as a
JSON-compatible dict or raises a ``FetchError`` variant; the orchestrator
translates those into caller-facing errors. Network timeouts, credentials
and HTTP semantics belong to the provider.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from copy import deepcopy
from pathlib import Path
from typing import Any

from questproof.games import GameRegistry, GameRules

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Base class for provider failures. Messages stay internal."""


class NotFound(FetchError):
    pass


class UpstreamRateLimited(FetchError):
    def __init__(self, message: str = "", retry_after: float = 60.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class Forbidden(FetchError):
    """Profile exists but is private."""


class Unauthorized(FetchError):
    """Our credential for the publisher API was rejected."""


class Unavailable(FetchError):
    pass


_ERROR_KINDS: dict[str, type[FetchError]] = {
    "not_found": NotFound,
    "rate_limited": UpstreamRateLimited,
    "forbidden": Forbidden,
    "unauthorized": Unauthorized,
    "unavailable": Unavailable,
}


class GameStatsProvider(ABC):
    """Fetches raw stats for one game."""

    def __init__(self, rules: GameRules) -> None:
        self.rules = rules

    @property
    def game_id(self) -> str:
        return self.rules.game_id

    def validate_account_format(self, account: str) -> bool:
        return self.rules.validate_account_format(account)

    @abstractmethod
    async def fetch_stats(self, account: str) -> dict[str, Any]: ...


class StaticStatsProvider(GameStatsProvider):
    """Serves canned stats per account; used for development and tests.

    An account mapped to a ``FetchError`` instance raises it. Unknown
    accounts raise ``NotFound``. ``latency`` simulates a slow upstream.
    """

    def __init__(
        self,
        rules: GameRules,
        accounts: Mapping[str, dict[str, Any] | FetchError] | None = None,
        latency: float = 0.0,
    ) -> None:
        super().__init__(rules)
        self._accounts: dict[str, dict[str, Any] | FetchError] = dict(accounts or {})
        self.latency = latency
        self.calls = 0

    def set_account(self, account: str, stats: dict[str, Any] | FetchError) -> None:
        self._accounts[account] = stats

    async def fetch_stats(self, account: str) -> dict[str, Any]:
        self.calls += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        entry = self._accounts.get(account)
        if entry is None:
            raise NotFound(f"no fixture for {self.game_id} account")
        if isinstance(entry, FetchError):
            raise entry
        return deepcopy(entry)


def load_fixture_providers(path: str | Path, registry: GameRegistry) -> dict[str, GameStatsProvider]:
    """Build static providers from a JSON file.

    Layout: ``{"<game>": {"<account>": {...stats...} | {"error": "<kind>"}}}``
    where kind is one of not_found, rate_limited, forbidden, unauthorized,
    unavailable. Games missing from the file get an empty provider.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    providers: dict[str, GameStatsProvider] = {}
    for rules in registry:
        accounts: dict[str, dict[str, Any] | FetchError] = {}
        for account, entry in data.get(rules.game_id, {}).items():
            kind = entry.get("error") if isinstance(entry, dict) else None
            if kind is not None:
                accounts[account] = _ERROR_KINDS[kind]()
            else:
                accounts[account] = entry
        providers[rules.game_id] = StaticStatsProvider(rules, accounts)
        logger.info("Loaded %d fixture accounts for %s", len(accounts), rules.game_id)
    return providers


def empty_providers(registry: GameRegistry) -> dict[str, GameStatsProvider]:
    return {rules.game_id: StaticStatsProvider(rules) for rules in registry}
