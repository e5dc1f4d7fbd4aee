"""Shared test fixtures."""

from __future__ import annotations

import copy
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from questproof.config import Settings
from questproof.games import GameRegistry, default_registry
from questproof.main import create_app
from questproof.services import Services, build_services
from questproof.store import MemoryStore, VerificationStore
from questproof.verification.chain import ChainSubmitter
from questproof.verification.providers import (
    FetchError,
    Forbidden,
    StaticStatsProvider,
    Unauthorized,
    Unavailable,
    UpstreamRateLimited,
)
from questproof.verification.quests import QuestRef, StaticQuestCatalog
from questproof.verification.rate_limiter import InMemoryRateLimiter
from questproof.verification.stats_cache import MemoryCacheBackend

# ---------------------------------------------------------------------------
# Stats fixtures (provider-shaped, snake_case)
# ---------------------------------------------------------------------------

# Gold II, honest record: fraud 0, skill 690 (Intermediate)
LOL_CLEAN: dict[str, Any] = {
    "summoner_level": 180,
    "solo_queue": {
        "tier": "GOLD",
        "rank": "II",
        "league_points": 40,
        "wins": 110,
        "losses": 90,
        "win_rate": 55.0,
    },
    "recent_performance": {"average_kda": 2.4, "win_rate": 55.0},
}

# 97% over 60 games in Gold: implausible (40) + tier mismatch (30) = 70
LOL_FRAUD: dict[str, Any] = {
    "summoner_level": 180,
    "solo_queue": {
        "tier": "GOLD",
        "rank": "I",
        "league_points": 90,
        "wins": 58,
        "losses": 2,
        "win_rate": 97.0,
    },
    "recent_performance": {"average_kda": 3.0, "win_rate": 97.0},
}

# Level 30 in ranked (25) with a Bronze KDA of 4.5 (30) = 55, skill 305 (Beginner)
LOL_REVIEW: dict[str, Any] = {
    "summoner_level": 30,
    "solo_queue": {
        "tier": "BRONZE",
        "rank": "I",
        "league_points": 0,
        "wins": 20,
        "losses": 20,
        "win_rate": 50.0,
    },
    "recent_performance": {"average_kda": 4.5, "win_rate": 50.0},
}

# Gold 2 at 50 RR: fraud 0, skill 950 (Intermediate+)
VALORANT_CLEAN: dict[str, Any] = {
    "account_level": 120,
    "current_rank": {"tier": "Gold 2", "rr": 50},
    "peak_rank": {"tier": "Platinum 1"},
    "recent_performance": {"kdr": 1.1, "head_shot_percentage": 22},
}

# K/D 1.0 at 50% rounds: fraud 0, skill 800 (Intermediate+)
CS_CLEAN: dict[str, Any] = {
    "player_info": {"steam_id": "76561198000000001", "account_created": "2015-01-01T00:00:00Z"},
    "combat": {"kills": 1000, "deaths": 1000, "kdr": 1.0, "head_shot_percentage": 35},
    "matches": {"wins": 120, "total_rounds": 240, "win_rate": 50},
}

LOL_ACCOUNT = "CleanPlayer"
LOL_FRAUD_ACCOUNT = "Smurfer"
LOL_REVIEW_ACCOUNT = "NewRanked"
VALORANT_ACCOUNT = "Player#1234"
CS_ACCOUNT = "76561198000000001"

WORLD_ID = 10
OTHER_WORLD_ID = 20

QUESTS = (
    QuestRef(1, world_id=WORLD_ID, title="Prove your rank"),
    QuestRef(2, world_id=WORLD_ID, title="Climb again"),
    QuestRef(3, world_id=OTHER_WORLD_ID, title="Another world"),
)


def fixture_accounts() -> dict[str, dict[str, dict[str, Any] | FetchError]]:
    return {
        "league_of_legends": {
            LOL_ACCOUNT: copy.deepcopy(LOL_CLEAN),
            LOL_FRAUD_ACCOUNT: copy.deepcopy(LOL_FRAUD),
            LOL_REVIEW_ACCOUNT: copy.deepcopy(LOL_REVIEW),
            "Hidden": Forbidden(),
            "Throttled": UpstreamRateLimited(retry_after=42),
            "BadCreds": Unauthorized(),
            "Down": Unavailable(),
        },
        "valorant": {VALORANT_ACCOUNT: copy.deepcopy(VALORANT_CLEAN)},
        "counter_strike": {CS_ACCOUNT: copy.deepcopy(CS_CLEAN)},
    }


def memory_settings(**overrides: Any) -> Settings:  # noqa: ANN401
    values: dict[str, Any] = {
        "store_backend": "memory",
        "cache_backend": "memory",
        "rate_limit_backend": "memory",
        "auto_create_schema": False,
        "log_format": "console",
        "fetch_timeout_seconds": 2.0,
        "chain_submit_timeout_seconds": 1.0,
    }
    values.update(overrides)
    return Settings(**values)


def make_services(
    settings: Settings | None = None,
    *,
    latency: float = 0.0,
    store: VerificationStore | None = None,
    chain: ChainSubmitter | None = None,
    registry: GameRegistry | None = None,
) -> Services:
    """Fully wired services over in-memory backends and static providers."""
    settings = settings or memory_settings()
    registry = registry or default_registry()
    accounts = fixture_accounts()
    providers = {
        rules.game_id: StaticStatsProvider(rules, accounts.get(rules.game_id, {}), latency=latency)
        for rules in registry
    }
    return build_services(
        settings,
        registry=registry,
        store=store or MemoryStore(),
        quests=StaticQuestCatalog(QUESTS),
        providers=providers,
        limiter=InMemoryRateLimiter(),
        cache_backend=MemoryCacheBackend(),
        chain=chain,
    )


@pytest.fixture
def settings() -> Settings:
    return memory_settings()


@pytest.fixture
def services(settings: Settings) -> Services:
    return make_services(settings)


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over an app wired with in-memory services."""
    app = create_app(services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def user_headers(user_id: int = 1, *, admin: bool = False) -> dict[str, str]:
    headers = {"X-User-Id": str(user_id)}
    if admin:
        headers["X-User-Role"] = "admin"
    return headers
