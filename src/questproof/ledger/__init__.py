"""Quest progress and world leaderboard bookkeeping."""

from questproof.ledger.leaderboard import LeaderboardAggregator, competition_ranks
from questproof.ledger.progress import VALID_TRANSITIONS, ProgressLedger, validate_transition

__all__ = [
    "VALID_TRANSITIONS",
    "LeaderboardAggregator",
    "ProgressLedger",
    "competition_ranks",
    "validate_transition",
]
