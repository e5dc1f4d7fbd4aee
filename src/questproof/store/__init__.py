"""Verification state stores."""

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
from questproof.store.memory import MemoryStore
from questproof.store.sql import SqlStore

__all__ = [
    "AttemptOutcome",
    "AttemptRecord",
    "GameProofCounts",
    "LeaderboardRecord",
    "MemoryStore",
    "ProgressRecord",
    "ProgressStatus",
    "ProofRecord",
    "SqlStore",
    "UnitOfWork",
    "VerificationStore",
]
