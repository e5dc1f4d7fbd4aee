"""Pydantic schemas for the verification API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Games ---


class GameSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    game: str
    name: str
    api_source: str
    required_stats: list[str]
    account_format: str
    total_verifications: int
    success_rate: float


class GamesResponse(BaseModel):
    games: list[GameSummaryResponse]


# --- Submission ---


class VerificationRequest(BaseModel):
    game: str = Field(min_length=1, max_length=32)
    game_account: str = Field(min_length=1, max_length=100)
    quest_id: int = Field(gt=0)


class VerificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    outcome: str  # accepted | under_review | rejected
    proof_id: str
    game: str
    quest_id: int
    skill_tier: str
    verification_hash: str
    fraud_score: int | None = None
    flags: list[str] | None = None
    warnings: list[str] = []
    blockchain_tx: str | None = None
    from_cache: bool = False


# --- History ---


class ProofResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proof_id: str
    quest_id: int
    game: str
    game_account: str
    api_source: str
    outcome: str
    fraud_score: int
    flags: list[str]
    skill_tier: str
    verification_hash: str
    verified: bool
    needs_manual_review: bool
    submitted_at: datetime
    last_verified: datetime | None = None
    blockchain_tx: str | None = None
    reverification: dict[str, Any] | None = None


class GameAnalyticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    game: str
    total: int
    verified: int
    success_rate: float
    average_fraud_score: float


class AnalyticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    verified: int
    success_rate: float
    by_game: list[GameAnalyticsResponse]


class HistoryResponse(BaseModel):
    proofs: list[ProofResponse]
    total: int
    limit: int
    offset: int
    analytics: AnalyticsResponse


class FraudReportsResponse(BaseModel):
    proofs: list[ProofResponse]
    total: int
    limit: int
    offset: int


class AttemptResponse(BaseModel):
    attempt_id: str
    game: str
    quest_id: int
    outcome: str
    fraud_score: int | None = None
    error: str | None = None
    created_at: datetime


# --- Re-verification / review ---


class ReverificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proof_id: str
    verified: bool
    still_valid: bool
    consistency_score: float
    fraud_score: int
    verification_hash: str
    revoked: bool
    flags: list[str]
    warnings: list[str]


class ReviewRequest(BaseModel):
    approve: bool


# --- Progress / leaderboard ---


class ProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quest_id: int
    status: str
    score: int
    completed_at: datetime | None = None


class LeaderboardEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    user_id: int
    score: int
    last_updated: datetime


class LeaderboardResponse(BaseModel):
    world_id: int
    entries: list[LeaderboardEntryResponse]
