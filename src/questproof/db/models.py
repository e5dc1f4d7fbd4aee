"""ORM models for verification state.

``quests`` belongs to the quest service and is mapped read-only here
(extend_existing=True, never written by this service).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from questproof.db.base import Base


# ---------------------------------------------------------------------------
# Quests (external, read-only)
# ---------------------------------------------------------------------------


class Quest(Base):
    """Maps to the quest service's 'quests' table."""

    __tablename__ = "quests"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    quest_id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    world_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    title: Mapped[str] = mapped_column(String(150), nullable=False)
    proof_required: Mapped[bool] = mapped_column(Boolean, default=True, server_default="1")


# ---------------------------------------------------------------------------
# Verification attempts (audit + rate limiting)
# ---------------------------------------------------------------------------


class VerificationAttempt(Base):
    """One row per submission call."""

    __tablename__ = "verification_attempts"
    __table_args__ = (
        Index("idx_verification_attempts_user_created", "user_id", "created_at"),
    )

    attempt_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    game: Mapped[str] = mapped_column(String(32), nullable=False)
    game_account: Mapped[str] = mapped_column(String(100), nullable=False)
    quest_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    outcome: Mapped[str] = mapped_column(String(16), nullable=False, server_default="pending")
    fraud_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Proofs
# ---------------------------------------------------------------------------


class Proof(Base):
    """Evidence and outcome of one verification.

    The partial unique index is the compare-and-swap for acceptance: at
    most one verified proof per (user, quest) can ever be committed.
    """

    __tablename__ = "proofs"
    __table_args__ = (
        Index(
            "uq_proofs_verified_user_quest",
            "user_id",
            "quest_id",
            unique=True,
            postgresql_where=text("verified"),
            sqlite_where=text("verified = 1"),
        ),
        Index("idx_proofs_user_submitted", "user_id", "submitted_at"),
        Index("idx_proofs_game", "game"),
    )

    proof_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quest_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    game: Mapped[str] = mapped_column(String(32), nullable=False)
    game_account: Mapped[str] = mapped_column(String(100), nullable=False)
    api_source: Mapped[str] = mapped_column(String(100), nullable=False)
    raw_stats: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    fraud_score: Mapped[int] = mapped_column(Integer, nullable=False)
    flags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    skill_tier: Mapped[str] = mapped_column(String(16), nullable=False)
    verification_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    envelope: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    needs_manual_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_verified: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    blockchain_tx: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reverification: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    reviewed_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


# ---------------------------------------------------------------------------
# Quest progress
# ---------------------------------------------------------------------------


class QuestProgress(Base):
    """Per (user, quest) progress status and best score."""

    __tablename__ = "quest_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "quest_id", name="uq_quest_progress_user_quest"),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quest_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="not_started")
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# World leaderboards
# ---------------------------------------------------------------------------


class LeaderboardEntry(Base):
    """Running score total per (user, world)."""

    __tablename__ = "leaderboard_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "world_id", name="uq_leaderboard_entries_user_world"),
        Index("idx_leaderboard_entries_world_score", "world_id", "score"),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    world_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    score: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
