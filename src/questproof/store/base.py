"""Persistence contract for verification state.

Records are plain dataclasses so the orchestrator never depends on the
storage technology. Everything one orchestration step reads and writes
goes through a single ``UnitOfWork``: it commits when the ``async with``
block exits cleanly and rolls back when it raises.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class AttemptOutcome(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    REJECTED = "rejected"
    ERRORED = "errored"


class ProgressStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    VERIFIED = "verified"


@dataclass
class AttemptRecord:
    attempt_id: str
    user_id: int
    game: str
    game_account: str
    quest_id: int
    created_at: datetime
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    fraud_score: int | None = None
    error: str | None = None


@dataclass
class ProofRecord:
    proof_id: str
    user_id: int
    quest_id: int
    game: str
    game_account: str
    api_source: str
    raw_stats: dict[str, Any]
    fraud_score: int
    flags: list[str]
    skill_tier: str
    verification_hash: str
    envelope: dict[str, Any]
    verified: bool
    needs_manual_review: bool
    submitted_at: datetime
    last_verified: datetime | None = None
    blockchain_tx: str | None = None
    reverification: dict[str, Any] | None = None
    reviewed_by: int | None = None

    @property
    def outcome(self) -> str:
        if self.verified:
            return "accepted"
        if self.needs_manual_review:
            return "under_review"
        return "rejected"


@dataclass
class ProgressRecord:
    user_id: int
    quest_id: int
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    score: int = 0
    completed_at: datetime | None = None


@dataclass
class LeaderboardRecord:
    user_id: int
    world_id: int
    score: int
    last_updated: datetime


@dataclass
class GameProofCounts:
    total: int = 0
    verified: int = 0
    fraud_scores: list[int] = field(default_factory=list)


class UnitOfWork(ABC):
    """Transactional view over the verification tables."""

    # --- Proofs ---

    @abstractmethod
    async def get_proof(self, proof_id: str) -> ProofRecord | None: ...

    @abstractmethod
    async def get_verified_proof(self, user_id: int, quest_id: int) -> ProofRecord | None: ...

    @abstractmethod
    async def add_proof(self, proof: ProofRecord) -> ProofRecord:
        """Insert a proof. Raises PersistenceConflict on a second verified proof for the pair."""

    @abstractmethod
    async def save_proof(self, proof: ProofRecord) -> ProofRecord:
        """Update an existing proof. Same conflict rule as ``add_proof``."""

    @abstractmethod
    async def delete_proof(self, proof_id: str) -> None: ...

    @abstractmethod
    async def list_proofs(
        self,
        *,
        user_id: int | None = None,
        game: str | None = None,
        verified: bool | None = None,
        flagged_threshold: int | None = None,
        by_risk: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ProofRecord], int]:
        """Return one page of proofs and the total matching count.

        ``flagged_threshold`` keeps proofs at or above that fraud score or
        awaiting manual review. Ordering is newest first, or highest fraud
        score first when ``by_risk`` is set.
        """

    @abstractmethod
    async def proof_counts_by_game(self, user_id: int | None = None) -> dict[str, GameProofCounts]: ...

    # --- Attempts ---

    @abstractmethod
    async def add_attempt(self, attempt: AttemptRecord) -> AttemptRecord: ...

    @abstractmethod
    async def save_attempt(self, attempt: AttemptRecord) -> AttemptRecord: ...

    @abstractmethod
    async def count_attempts(self, user_id: int, since: datetime, game: str | None = None) -> int: ...

    @abstractmethod
    async def recent_attempts(self, user_id: int, limit: int = 20) -> list[AttemptRecord]:
        """Newest first."""

    # --- Progress ---

    @abstractmethod
    async def get_progress(self, user_id: int, quest_id: int) -> ProgressRecord | None: ...

    @abstractmethod
    async def save_progress(self, progress: ProgressRecord) -> ProgressRecord: ...

    # --- Leaderboard ---

    @abstractmethod
    async def increment_leaderboard(
        self, user_id: int, world_id: int, delta: int, at: datetime,
    ) -> LeaderboardRecord:
        """Atomically add ``delta`` to the (user, world) total, creating the row if needed."""

    @abstractmethod
    async def get_leaderboard_entry(self, user_id: int, world_id: int) -> LeaderboardRecord | None: ...

    @abstractmethod
    async def top_leaderboard(self, world_id: int, limit: int = 50) -> list[LeaderboardRecord]: ...

    @abstractmethod
    async def leaderboard_rank(self, user_id: int, world_id: int) -> int | None:
        """1 + number of users in the world with a strictly higher score; None without an entry."""


class VerificationStore(ABC):
    """Factory for units of work. Constructed at start-up, closed at shutdown."""

    @abstractmethod
    def unit_of_work(self) -> AbstractAsyncContextManager[UnitOfWork]: ...

    async def close(self) -> None:
        return None

