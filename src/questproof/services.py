"""Service container: everything the API needs, built once at start-up."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta

from questproof.config import Settings
from questproof.games import GameRegistry, default_registry
from questproof.ledger import LeaderboardAggregator, ProgressLedger
from questproof.store import MemoryStore, SqlStore, VerificationStore
from questproof.verification.chain import ChainSubmitter
from questproof.verification.commitment import ProofCommitmentService
from questproof.verification.fraud import FraudDetectionEngine
from questproof.verification.history import VerificationHistoryService
from questproof.verification.orchestrator import VerificationOrchestrator
from questproof.verification.providers import GameStatsProvider, empty_providers, load_fixture_providers
from questproof.verification.quests import QuestCatalog, SqlQuestCatalog, StaticQuestCatalog
from questproof.verification.rate_limiter import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from questproof.verification.skill import SkillAssessmentEngine
from questproof.verification.stats_cache import CacheBackend, MemoryCacheBackend, RedisCacheBackend, StatsCache

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    registry: GameRegistry
    store: VerificationStore
    limiter: RateLimiter
    cache: StatsCache
    quests: QuestCatalog
    orchestrator: VerificationOrchestrator
    history: VerificationHistoryService
    leaderboard: LeaderboardAggregator
    providers: dict[str, GameStatsProvider] = field(default_factory=dict)

    async def close(self) -> None:
        await self.limiter.close()
        await self.store.close()


def _default_store(settings: Settings) -> VerificationStore:
    if settings.store_backend == "memory":
        return MemoryStore()
    from questproof.database import get_session_factory

    return SqlStore(get_session_factory())


def _default_quests(settings: Settings) -> QuestCatalog:
    if settings.store_backend == "memory":
        return StaticQuestCatalog()
    from questproof.database import get_session_factory

    return SqlQuestCatalog(get_session_factory())


def _default_limiter(settings: Settings) -> RateLimiter:
    if settings.rate_limit_backend == "memory":
        return InMemoryRateLimiter()
    from questproof.redis_client import get_redis

    return RedisRateLimiter(get_redis())


def _default_cache_backend(settings: Settings) -> CacheBackend:
    if settings.cache_backend == "memory":
        return MemoryCacheBackend()
    from questproof.redis_client import get_redis

    return RedisCacheBackend(get_redis())


def build_services(
    settings: Settings,
    *,
    registry: GameRegistry | None = None,
    store: VerificationStore | None = None,
    quests: QuestCatalog | None = None,
    providers: Mapping[str, GameStatsProvider] | None = None,
    limiter: RateLimiter | None = None,
    cache_backend: CacheBackend | None = None,
    chain: ChainSubmitter | None = None,
) -> Services:
    """Wire the verification services. Anything passed in overrides the configured backend."""
    registry = registry or default_registry()
    store = store or _default_store(settings)
    quests = quests or _default_quests(settings)
    limiter = limiter or _default_limiter(settings)
    cache = StatsCache(cache_backend or _default_cache_backend(settings), ttl=settings.stats_cache_ttl_seconds)

    if providers is None:
        if settings.provider_fixtures_path:
            providers = load_fixture_providers(settings.provider_fixtures_path, registry)
        else:
            logger.warning("No stats providers configured; every account lookup will miss")
            providers = empty_providers(registry)

    leaderboard = LeaderboardAggregator(store)
    ledger = ProgressLedger(leaderboard, settings.skill_tier_points)
    fraud = FraudDetectionEngine(
        registry,
        store,
        behavior_attempt_threshold=settings.behavior_attempt_threshold,
        behavior_window=timedelta(hours=settings.behavior_window_hours),
        behavior_weight=settings.behavior_weight,
    )
    orchestrator = VerificationOrchestrator(
        registry=registry,
        providers=providers,
        store=store,
        cache=cache,
        limiter=limiter,
        fraud=fraud,
        skill=SkillAssessmentEngine(registry, settings.skill_tier_points),
        commitments=ProofCommitmentService(settings.commitment_secret, settings.proof_protocol_version),
        ledger=ledger,
        quests=quests,
        chain=chain,
        settings=settings,
    )
    return Services(
        settings=settings,
        registry=registry,
        store=store,
        limiter=limiter,
        cache=cache,
        quests=quests,
        orchestrator=orchestrator,
        history=VerificationHistoryService(store, registry, settings.fraud_review_threshold),
        leaderboard=leaderboard,
        providers=dict(providers),
    )
