"""SQLAlchemy-backed verification store (PostgreSQL in production, SQLite locally)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, nullcontext
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from questproof.db.models import LeaderboardEntry, Proof, QuestProgress, VerificationAttempt
from questproof.errors import PersistenceConflict
from questproof.store.base import (
    AttemptOutcome,
    AttemptRecord,
    GameProofCounts,
    LeaderboardRecord,
    ProgressRecord,
    ProgressStatus,
    ProofRecord,
    UnitOfWork,
    VerificationStore,
)

logger = logging.getLogger(__name__)

_PROOF_FIELDS = (
    "user_id", "quest_id", "game", "game_account", "api_source", "raw_stats",
    "fraud_score", "flags", "skill_tier", "verification_hash", "envelope",
    "verified", "needs_manual_review", "submitted_at", "last_verified",
    "blockchain_tx", "reverification", "reviewed_by",
)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything here is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _proof_record(row: Proof) -> ProofRecord:
    return ProofRecord(
        proof_id=row.proof_id,
        user_id=row.user_id,
        quest_id=row.quest_id,
        game=row.game,
        game_account=row.game_account,
        api_source=row.api_source,
        raw_stats=dict(row.raw_stats or {}),
        fraud_score=row.fraud_score,
        flags=list(row.flags or []),
        skill_tier=row.skill_tier,
        verification_hash=row.verification_hash,
        envelope=dict(row.envelope or {}),
        verified=row.verified,
        needs_manual_review=row.needs_manual_review,
        submitted_at=_aware(row.submitted_at),
        last_verified=_aware(row.last_verified),
        blockchain_tx=row.blockchain_tx,
        reverification=dict(row.reverification) if row.reverification else None,
        reviewed_by=row.reviewed_by,
    )


def _proof_values(proof: ProofRecord) -> dict[str, Any]:
    return {name: getattr(proof, name) for name in _PROOF_FIELDS}


def _attempt_record(row: VerificationAttempt) -> AttemptRecord:
    return AttemptRecord(
        attempt_id=row.attempt_id,
        user_id=row.user_id,
        game=row.game,
        game_account=row.game_account,
        quest_id=row.quest_id,
        created_at=_aware(row.created_at),
        outcome=AttemptOutcome(row.outcome),
        fraud_score=row.fraud_score,
        error=row.error,
    )


def _progress_record(row: QuestProgress) -> ProgressRecord:
    return ProgressRecord(
        user_id=row.user_id,
        quest_id=row.quest_id,
        status=ProgressStatus(row.status),
        score=row.score,
        completed_at=_aware(row.completed_at),
    )


def _leaderboard_record(row: LeaderboardEntry) -> LeaderboardRecord:
    return LeaderboardRecord(
        user_id=row.user_id,
        world_id=row.world_id,
        score=int(row.score),
        last_updated=_aware(row.last_updated),
    )


class SqlUnitOfWork(UnitOfWork):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _flush(self) -> None:
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise PersistenceConflict() from exc

    # --- Proofs ---

    async def get_proof(self, proof_id: str) -> ProofRecord | None:
        row = await self._session.get(Proof, proof_id, populate_existing=True)
        return _proof_record(row) if row else None

    async def get_verified_proof(self, user_id: int, quest_id: int) -> ProofRecord | None:
        result = await self._session.execute(
            select(Proof).where(
                Proof.user_id == user_id,
                Proof.quest_id == quest_id,
                Proof.verified.is_(True),
            )
        )
        row = result.scalars().first()
        return _proof_record(row) if row else None

    async def add_proof(self, proof: ProofRecord) -> ProofRecord:
        self._session.add(Proof(proof_id=proof.proof_id, **_proof_values(proof)))
        await self._flush()
        return proof

    async def save_proof(self, proof: ProofRecord) -> ProofRecord:
        row = await self._session.get(Proof, proof.proof_id)
        if row is None:
            raise PersistenceConflict(f"Proof {proof.proof_id} no longer exists")
        for name, value in _proof_values(proof).items():
            setattr(row, name, value)
        await self._flush()
        return proof

    async def delete_proof(self, proof_id: str) -> None:
        row = await self._session.get(Proof, proof_id)
        if row is not None:
            await self._session.delete(row)
            await self._flush()

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
        conditions = []
        if user_id is not None:
            conditions.append(Proof.user_id == user_id)
        if game is not None:
            conditions.append(Proof.game == game)
        if verified is not None:
            conditions.append(Proof.verified.is_(verified))
        if flagged_threshold is not None:
            conditions.append(or_(
                Proof.fraud_score >= flagged_threshold,
                Proof.needs_manual_review.is_(True),
            ))

        total = await self._session.scalar(
            select(func.count()).select_from(Proof).where(*conditions)
        )
        order = (
            (Proof.fraud_score.desc(), Proof.submitted_at.desc())
            if by_risk
            else (Proof.submitted_at.desc(),)
        )
        result = await self._session.execute(
            select(Proof).where(*conditions).order_by(*order).limit(limit).offset(offset)
        )
        return [_proof_record(r) for r in result.scalars()], int(total or 0)

    async def proof_counts_by_game(self, user_id: int | None = None) -> dict[str, GameProofCounts]:
        query = select(Proof.game, Proof.verified, Proof.fraud_score)
        if user_id is not None:
            query = query.where(Proof.user_id == user_id)
        result = await self._session.execute(query)

        counts: dict[str, GameProofCounts] = {}
        for game, verified, fraud_score in result:
            c = counts.setdefault(game, GameProofCounts())
            c.total += 1
            c.verified += int(bool(verified))
            c.fraud_scores.append(fraud_score)
        return counts

    # --- Attempts ---

    async def add_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        self._session.add(VerificationAttempt(
            attempt_id=attempt.attempt_id,
            user_id=attempt.user_id,
            game=attempt.game,
            game_account=attempt.game_account,
            quest_id=attempt.quest_id,
            outcome=attempt.outcome.value,
            fraud_score=attempt.fraud_score,
            error=attempt.error,
            created_at=attempt.created_at,
        ))
        await self._flush()
        return attempt

    async def save_attempt(self, attempt: AttemptRecord) -> AttemptRecord:
        await self._session.execute(
            update(VerificationAttempt)
            .where(VerificationAttempt.attempt_id == attempt.attempt_id)
            .values(
                outcome=attempt.outcome.value,
                fraud_score=attempt.fraud_score,
                error=attempt.error,
            )
        )
        return attempt

    async def count_attempts(self, user_id: int, since: datetime, game: str | None = None) -> int:
        query = select(func.count()).select_from(VerificationAttempt).where(
            VerificationAttempt.user_id == user_id,
            VerificationAttempt.created_at >= since,
        )
        if game is not None:
            query = query.where(VerificationAttempt.game == game)
        return int(await self._session.scalar(query) or 0)

    async def recent_attempts(self, user_id: int, limit: int = 20) -> list[AttemptRecord]:
        result = await self._session.execute(
            select(VerificationAttempt)
            .where(VerificationAttempt.user_id == user_id)
            .order_by(VerificationAttempt.created_at.desc())
            .limit(limit)
        )
        return [_attempt_record(r) for r in result.scalars()]

    # --- Progress ---

    async def _progress_row(self, user_id: int, quest_id: int) -> QuestProgress | None:
        result = await self._session.execute(
            select(QuestProgress)
            .where(QuestProgress.user_id == user_id, QuestProgress.quest_id == quest_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_progress(self, user_id: int, quest_id: int) -> ProgressRecord | None:
        row = await self._progress_row(user_id, quest_id)
        return _progress_record(row) if row else None

    async def save_progress(self, progress: ProgressRecord) -> ProgressRecord:
        row = await self._progress_row(progress.user_id, progress.quest_id)
        if row is None:
            row = QuestProgress(user_id=progress.user_id, quest_id=progress.quest_id)
            self._session.add(row)
        row.status = progress.status.value
        row.score = progress.score
        row.completed_at = progress.completed_at
        await self._flush()
        return progress

    # --- Leaderboard ---

    async def increment_leaderboard(
        self, user_id: int, world_id: int, delta: int, at: datetime,
    ) -> LeaderboardRecord:
        dialect = self._session.bind.dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            return await self._increment_portable(user_id, world_id, delta, at)

        stmt = insert(LeaderboardEntry).values(
            user_id=user_id,
            world_id=world_id,
            score=delta,
            last_updated=at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "world_id"],
            set_={
                "score": LeaderboardEntry.score + stmt.excluded.score,
                "last_updated": stmt.excluded.last_updated,
            },
        )
        await self._session.execute(stmt)
        entry = await self.get_leaderboard_entry(user_id, world_id)
        assert entry is not None
        return entry

    async def _increment_portable(
        self, user_id: int, world_id: int, delta: int, at: datetime,
    ) -> LeaderboardRecord:
        result = await self._session.execute(
            update(LeaderboardEntry)
            .where(LeaderboardEntry.user_id == user_id, LeaderboardEntry.world_id == world_id)
            .values(score=LeaderboardEntry.score + delta, last_updated=at)
        )
        if result.rowcount == 0:
            self._session.add(LeaderboardEntry(
                user_id=user_id, world_id=world_id, score=delta, last_updated=at,
            ))
            await self._flush()
        entry = await self.get_leaderboard_entry(user_id, world_id)
        assert entry is not None
        return entry

    async def get_leaderboard_entry(self, user_id: int, world_id: int) -> LeaderboardRecord | None:
        result = await self._session.execute(
            select(LeaderboardEntry)
            .where(LeaderboardEntry.user_id == user_id, LeaderboardEntry.world_id == world_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _leaderboard_record(row) if row else None

    async def top_leaderboard(self, world_id: int, limit: int = 50) -> list[LeaderboardRecord]:
        result = await self._session.execute(
            select(LeaderboardEntry)
            .where(LeaderboardEntry.world_id == world_id)
            .order_by(LeaderboardEntry.score.desc(), LeaderboardEntry.last_updated.asc())
            .limit(limit)
        )
        return [_leaderboard_record(r) for r in result.scalars()]

    async def leaderboard_rank(self, user_id: int, world_id: int) -> int | None:
        entry = await self.get_leaderboard_entry(user_id, world_id)
        if entry is None:
            return None
        higher = await self._session.scalar(
            select(func.count()).select_from(LeaderboardEntry).where(
                LeaderboardEntry.world_id == world_id,
                LeaderboardEntry.score > entry.score,
            )
        )
        return 1 + int(higher or 0)


class SqlStore(VerificationStore):
    """One database transaction per unit of work.

    SQLite allows a single writer, so its units of work are serialised
    in-process the same way ``MemoryStore`` serialises commits.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        serialize: bool | None = None,
    ) -> None:
        self._session_factory = session_factory
        if serialize is None:
            bind = session_factory.kw.get("bind")
            serialize = bind is not None and bind.dialect.name == "sqlite"
        self._write_lock = asyncio.Lock() if serialize else None

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[UnitOfWork]:
        async with self._write_lock or nullcontext():
            async with self._session_factory() as session:
                try:
                    async with session.begin():
                        yield SqlUnitOfWork(session)
                except IntegrityError as exc:
                    # Raised at commit time by deferred constraint checks
                    logger.info("Unit of work rolled back on integrity error: %s", exc.orig)
                    raise PersistenceConflict() from exc
