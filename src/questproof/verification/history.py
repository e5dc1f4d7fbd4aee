"""Read side: verification history, analytics, fraud reports, supported games."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from questproof.games import GameRegistry
from questproof.store import AttemptRecord, GameProofCounts, ProofRecord, VerificationStore

HISTORY_STATUSES = frozenset({"verified", "pending"})


def _success_rate(counts: GameProofCounts) -> float:
    return round(counts.verified / counts.total * 100, 1) if counts.total else 0.0


@dataclass
class GameAnalytics:
    game: str
    total: int
    verified: int
    success_rate: float
    average_fraud_score: float


@dataclass
class UserAnalytics:
    total: int = 0
    verified: int = 0
    success_rate: float = 0.0
    by_game: list[GameAnalytics] = field(default_factory=list)


@dataclass
class ProofPage:
    items: list[ProofRecord]
    total: int
    limit: int
    offset: int


@dataclass
class GameSummary:
    game: str
    name: str
    api_source: str
    required_stats: list[str]
    account_format: str
    total_verifications: int
    success_rate: float


class VerificationHistoryService:
    def __init__(self, store: VerificationStore, registry: GameRegistry, review_threshold: int = 50) -> None:
        self.store = store
        self.registry = registry
        self.review_threshold = review_threshold

    async def history(
        self,
        user_id: int,
        *,
        game: str | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[ProofPage, UserAnalytics]:
        """One page of the user's proofs plus analytics over all of them.

        ``status`` is ``verified`` or ``pending`` (anything not yet verified).
        """
        if game is not None:
            self.registry.get(game)
        if status is not None and status not in HISTORY_STATUSES:
            raise ValueError(f"status must be one of {sorted(HISTORY_STATUSES)}")
        verified = None if status is None else status == "verified"

        async with self.store.unit_of_work() as uow:
            items, total = await uow.list_proofs(
                user_id=user_id, game=game, verified=verified, limit=limit, offset=offset,
            )
            counts = await uow.proof_counts_by_game(user_id)
        return ProofPage(items=items, total=total, limit=limit, offset=offset), self._analytics(counts)

    async def recent_attempts(self, user_id: int, limit: int = 20) -> list[AttemptRecord]:
        async with self.store.unit_of_work() as uow:
            return await uow.recent_attempts(user_id, limit)

    async def latest_verified(self, user_id: int, game: str, limit: int = 5) -> list[ProofRecord]:
        self.registry.get(game)
        async with self.store.unit_of_work() as uow:
            items, _ = await uow.list_proofs(user_id=user_id, game=game, verified=True, limit=limit)
        return items

    async def fraud_reports(self, *, limit: int = 20, offset: int = 0) -> ProofPage:
        """Proofs at or above the review threshold, or awaiting review, highest risk first."""
        async with self.store.unit_of_work() as uow:
            items, total = await uow.list_proofs(
                flagged_threshold=self.review_threshold, by_risk=True, limit=limit, offset=offset,
            )
        return ProofPage(items=items, total=total, limit=limit, offset=offset)

    async def supported_games(self) -> list[GameSummary]:
        async with self.store.unit_of_work() as uow:
            counts = await uow.proof_counts_by_game()
        summaries = []
        for rules in self.registry:
            c = counts.get(rules.game_id, GameProofCounts())
            info: dict[str, Any] = rules.describe()
            summaries.append(GameSummary(
                game=info["id"],
                name=info["name"],
                api_source=info["api_source"],
                required_stats=info["required_stats"],
                account_format=info["account_format"],
                total_verifications=c.total,
                success_rate=_success_rate(c),
            ))
        return summaries

    @staticmethod
    def _analytics(counts: dict[str, GameProofCounts]) -> UserAnalytics:
        total = sum(c.total for c in counts.values())
        verified = sum(c.verified for c in counts.values())
        by_game = [
            GameAnalytics(
                game=game,
                total=c.total,
                verified=c.verified,
                success_rate=_success_rate(c),
                average_fraud_score=round(sum(c.fraud_scores) / len(c.fraud_scores), 1) if c.fraud_scores else 0.0,
            )
            for game, c in sorted(counts.items())
        ]
        return UserAnalytics(
            total=total,
            verified=verified,
            success_rate=round(verified / total * 100, 1) if total else 0.0,
            by_game=by_game,
        )
