"""In-process store with the same transactional contract as the SQL store.

Units of work are serialised by one asyncio lock and operate on
copy-on-write snapshots of the tables: a block that raises leaves the
committed state untouched. Records are copied on the way in and out so
callers can never mutate committed state behind the store's back.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import datetime

from questproof.errors import PersistenceConflict
from questproof.store.base import (
    AttemptRecord,
    GameProofCounts,
    LeaderboardRecord,
    ProgressRecord,
    ProofRecord,
    UnitOfWork,
    VerificationStore,
)


@dataclass
class _Tables:
    proofs: dict[str, ProofRecord] = field(default_factory=dict)
    attempts: dict[str, AttemptRecord] = field(default_factory=dict)
    progress: dict[tuple[int, int], ProgressRecord] = field(default_factory=dict)
    leaderboard: dict[tuple[int, int], LeaderboardRecord] = field(default_factory=dict)

    def snapshot(self) -> _Tables:
        return _Tables(
            proofs=dict(self.proofs),
            attempts=dict(self.attempts),
            progress=dict(self.progress),
            leaderboard=dict(self.leaderboard),
        )


class MemoryUnitOfWork(UnitOfWork):
    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    # --- Proofs ---

    async def get_proof(self, proof_id: str) -> ProofRecord | None:
        proof = self._t.proofs.get(proof_id)
        return deepcopy(proof) if proof else None

    async def get_verified_proof(self, user_id: int, quest_id: int) -> ProofRecord | None:
        for proof in self._t.proofs.values():
            if proof.user_id == user_id and proof.quest_id == quest_id and proof.verified:
                return deepcopy(proof)
        return None

    def _check_unique_verified(self, proof: ProofRecord) -> None:
        if not proof.verified:
            return
        for other in self._t.proofs.values():
            if (
                other.proof_id != proof.proof_id
                and other.user_id == proof.user_id
                and other.quest_id == proof.quest_id
                and other.verified
            ):
                raise PersistenceConflict()

    async def add_proof(self, proof: ProofRecord) -> ProofRecord:
        if proof.proof_id in self._t.proofs:
            raise PersistenceConflict(f"Proof {proof.proof_id} already exists")
        self._check_unique_verified(proof)
        self._t.proofs[proof.proof_id] = deepcopy(proof)
        return deepcopy(proof)

    async def save_proof(self, proof: ProofRecord) -> ProofRecord:
        if proof.proof_id not in self._t.proofs:
            raise PersistenceConflict(f"Proof {proof.proof_id} no longer exists")
        self._check_unique_verified(proof)
        self._t.proofs[proof.proof_id] = deepcopy(proof)
        return deepcopy(proof)

    async def delete_proof(self, proof_id: str) -> None:
        self._t.proofs.pop(proof_id, None)

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
        rows = [
            p for p in self._t.proofs.values()
            if (user_id is None or p.user_id == user_id)
            and (game is None or p.game == game)
            and (verified is None or p.verified == verified)
            and (
                flagged_threshold is None
                or p.fraud_score >= flagged_threshold
                or p.needs_manual_review
            )
        ]
        if by_risk:
            rows.sort(key=lambda p: (p.fraud_score, p.submitted_at), reverse=True)
        else:
            rows.sort(key=lambda p: p.submitted_at, reverse=True)
        return [deepcopy(p) for p in rows[offset:offset + limit]], len(rows)

    async def proof_counts_by_game(self, user_id: int | None = None) -> dict[str, GameProofCounts]:
        counts: dict[str, GameProofCounts] = {}
        for p in self._t.proofs.values():
            if user_id is not None and p.user_id != user_id:
                continue
            c = counts.setdefault(p.game, GameProofCounts())
            c.total += 1
            c.verified += int(p.verified)
            c.fraud_scores.append(p.fraud_score)
        return counts

    # --- Attempts ---

    async def add_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        self._t.attempts[attempt.attempt_id] = replace(attempt)
        return replace(attempt)

    async def save_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        self._t.attempts[attempt.attempt_id] = replace(attempt)
        return replace(attempt)

    async def count_attempts(self, user_id: int, since: datetime, game: str | None = None) -> int:
        return sum(
            1 for a in self._t.attempts.values()
            if a.user_id == user_id and a.created_at >= since and (game is None or a.game == game)
        )

    async def recent_attempts(self, user_id: int, limit: int = 20) -> list[AttemptRecord]:
        rows = [a for a in self._t.attempts.values() if a.user_id == user_id]
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return [replace(a) for a in rows[:limit]]

    # --- Progress ---

    async def get_progress(self, user_id: int, quest_id: int) -> ProgressRecord | None:
        rec = self._t.progress.get((user_id, quest_id))
        return replace(rec) if rec else None

    async def save_progress(self, progress: ProgressRecord) -> ProgressRecord:
        self._t.progress[(progress.user_id, progress.quest_id)] = replace(progress)
        return replace(progress)

    # --- Leaderboard ---

    async def increment_leaderboard(
        self, user_id: int, world_id: int, delta: int, at: datetime,
    ) -> LeaderboardRecord:
        key = (user_id, world_id)
        current = self._t.leaderboard.get(key)
        score = (current.score if current else 0) + delta
        entry = LeaderboardRecord(user_id=user_id, world_id=world_id, score=score, last_updated=at)
        self._t.leaderboard[key] = entry
        return replace(entry)

    async def get_leaderboard_entry(self, user_id: int, world_id: int) -> LeaderboardRecord | None:
        entry = self._t.leaderboard.get((user_id, world_id))
        return replace(entry) if entry else None

    async def top_leaderboard(self, world_id: int, limit: int = 50) -> list[LeaderboardRecord]:
        rows = [e for e in self._t.leaderboard.values() if e.world_id == world_id]
        rows.sort(key=lambda e: (-e.score, e.last_updated))
        return [replace(e) for e in rows[:limit]]

    async def leaderboard_rank(self, user_id: int, world_id: int) -> int | None:
        mine = self._t.leaderboard.get((user_id, world_id))
        if mine is None:
            return None
        return 1 + sum(
            1 for e in self._t.leaderboard.values() if e.world_id == world_id and e.score > mine.score
        )


class MemoryStore(VerificationStore):
    """Serialised, all-or-nothing units of work over in-memory tables."""

    def __init__(self) -> None:
        self._tables = _Tables()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[UnitOfWork]:
        async with self._lock:
            staged = self._tables.snapshot()
            yield MemoryUnitOfWork(staged)
            # Only reached when the block did not raise
            self._tables = staged
