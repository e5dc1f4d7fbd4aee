"""Verification error taxonomy.

Every failure a caller can observe is one of these. Upstream provider
detail never reaches the message; the ``code`` is stable for clients.
"""

from __future__ import annotations


class VerificationError(Exception):
    """Base class for caller-facing verification failures."""

    code: str = "verification_error"
    status_code: int = 400
    retryable: bool = False
    default_message: str = "Verification failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, object]:
        return {"detail": self.message, "code": self.code}


class AlreadyVerified(VerificationError):
    code = "already_verified"
    status_code = 409
    default_message = "You have already completed verification for this quest"


class RateLimited(VerificationError):
    code = "rate_limited"
    status_code = 429
    retryable = True
    default_message = "Too many verification attempts. Try again later."

    def __init__(self, retry_after: float, message: str | None = None) -> None:
        self.retry_after = max(0.0, retry_after)
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["retry_after"] = round(self.retry_after, 3)
        return data


class InvalidAccountFormat(VerificationError):
    code = "invalid_account_format"
    default_message = "Invalid game account format"


class UnsupportedGame(VerificationError):
    code = "unsupported_game"
    default_message = "Unsupported game"


class AccountNotFound(VerificationError):
    code = "account_not_found"
    status_code = 404
    default_message = "Game account not found. Please check your username/ID."


class AccountPrivate(VerificationError):
    code = "account_private"
    status_code = 403
    default_message = "Account profile is private. Please make it public for verification."


class UpstreamUnauthorized(VerificationError):
    code = "upstream_unauthorized"
    status_code = 502
    default_message = "Game statistics service rejected our credentials"


class UpstreamUnavailable(VerificationError):
    code = "upstream_unavailable"
    status_code = 503
    retryable = True
    default_message = "Game statistics service is unavailable. Please try again shortly."

    def __init__(self, message: str | None = None, retry_after: float = 30.0) -> None:
        self.retry_after = retry_after
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class InternalScoringFailure(VerificationError):
    code = "internal_scoring_failure"
    status_code = 500
    default_message = "Verification could not be completed"


class PersistenceConflict(VerificationError):
    code = "persistence_conflict"
    status_code = 409
    default_message = "A concurrent verification changed this record"


class QuestNotFound(VerificationError):
    code = "quest_not_found"
    status_code = 404
    default_message = "Quest not found"


class ProofNotFound(VerificationError):
    code = "proof_not_found"
    status_code = 404
    default_message = "Proof not found"


class NotProofOwner(VerificationError):
    code = "not_proof_owner"
    status_code = 403
    default_message = "Access denied"


class ReverificationExpired(VerificationError):
    code = "reverification_expired"
    default_message = "Proof is too old to re-verify. Please submit a new verification."


class NotUnderReview(VerificationError):
    code = "not_under_review"
    status_code = 409
    default_message = "Proof is not awaiting manual review"


class InvalidProgressTransition(VerificationError):
    code = "invalid_progress_transition"
    status_code = 409
    default_message = "Invalid quest progress transition"


class ProofNotDeletable(VerificationError):
    code = "proof_not_deletable"
    status_code = 403
    default_message = "Verified proofs cannot be deleted"
