"""QuestProof: game account verification, fraud scoring and quest leaderboards."""

__version__ = "0.1.0"
