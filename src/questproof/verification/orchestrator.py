"""Verification orchestrator.

Per (user, quest) the flow is
NoAttempt -> Fetching -> Scored -> {Accepted, UnderReview, Rejected}.

The idempotency gate is checked up front as a cheap early exit and
again inside the unit of work that persists the proof, where the
store's unique constraint on verified proofs makes it a
compare-and-swap. Only one of two racing submissions can commit an
accepted proof; the loser gets AlreadyVerified and leaves no trace
beyond its attempt row.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from questproof.config import Settings, get_settings
from questproof.errors import (
    AccountNotFound,
    AccountPrivate,
    AlreadyVerified,
    InternalScoringFailure,
    InvalidAccountFormat,
    NotProofOwner,
    NotUnderReview,
    PersistenceConflict,
    ProofNotDeletable,
    ProofNotFound,
    QuestNotFound,
    RateLimited,
    ReverificationExpired,
    UnsupportedGame,
    UpstreamUnauthorized,
    UpstreamUnavailable,
    VerificationError,
)
from questproof.games import GameRegistry, GameRules
from questproof.ledger import ProgressLedger
from questproof.store import (
    AttemptOutcome,
    AttemptRecord,
    ProgressRecord,
    ProofRecord,
    VerificationStore,
)
from questproof.verification.chain import ChainSubmitter, NullChainSubmitter
from questproof.verification.commitment import ProofCommitmentService, ProofEnvelope
from questproof.verification.consistency import compare_stats
from questproof.verification.fraud import FraudDetectionEngine, RiskBand, risk_band
from questproof.verification.providers import (
    FetchError,
    Forbidden,
    GameStatsProvider,
    NotFound,
    Unauthorized,
    UpstreamRateLimited,
)
from questproof.verification.quests import QuestCatalog
from questproof.verification.rate_limiter import RateLimiter
from questproof.verification.skill import SkillAssessmentEngine
from questproof.verification.stats_cache import StatsCache

logger = structlog.get_logger()

CHAIN_FAILURE_WARNING = "Proof accepted but on-chain submission failed; it can be resubmitted later"

_OUTCOMES: dict[RiskBand, str] = {
    RiskBand.LOW: "accepted",
    RiskBand.REVIEW: "under_review",
    RiskBand.HIGH: "rejected",
}

_ATTEMPT_OUTCOMES: dict[str, AttemptOutcome] = {
    "accepted": AttemptOutcome.SUCCESS,
    "under_review": AttemptOutcome.PENDING,
    "rejected": AttemptOutcome.REJECTED,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def mask_account(account: str) -> str:
    return f"{account[:8]}..."


@dataclass
class VerificationResult:
    outcome: str
    proof_id: str
    game: str
    quest_id: int
    skill_tier: str
    verification_hash: str
    fraud_score: int | None = None
    flags: list[str] | None = None
    warnings: list[str] = field(default_factory=list)
    blockchain_tx: str | None = None
    from_cache: bool = False

    @property
    def accepted(self) -> bool:
        return self.outcome == "accepted"


@dataclass
class ReverificationResult:
    proof_id: str
    verified: bool
    still_valid: bool
    consistency_score: float
    fraud_score: int
    verification_hash: str
    revoked: bool = False
    flags: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class VerificationOrchestrator:
    """Coordinates gates, fetch, scoring, commitment and ledger updates."""

    def __init__(
        self,
        *,
        registry: GameRegistry,
        providers: Mapping[str, GameStatsProvider],
        store: VerificationStore,
        cache: StatsCache,
        limiter: RateLimiter,
        fraud: FraudDetectionEngine,
        skill: SkillAssessmentEngine,
        commitments: ProofCommitmentService,
        ledger: ProgressLedger,
        quests: QuestCatalog,
        chain: ChainSubmitter | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.registry = registry
        self.providers = dict(providers)
        self.store = store
        self.cache = cache
        self.limiter = limiter
        self.fraud = fraud
        self.skill = skill
        self.commitments = commitments
        self.ledger = ledger
        self.quests = quests
        self.chain = chain or NullChainSubmitter()
        self.settings = settings or get_settings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_verification(
        self, user_id: int, game: str, account: str, quest_id: int,
    ) -> VerificationResult:
        rules = self.registry.get(game)
        provider = self._provider(game)
        quest = await self.quests.get_quest(quest_id)
        if quest is None:
            raise QuestNotFound(f"Quest {quest_id} not found")

        now = self._clock()
        attempt = AttemptRecord(
            attempt_id=str(uuid.uuid4()),
            user_id=user_id,
            game=game,
            game_account=account,
            quest_id=quest_id,
            created_at=now,
        )
        async with self.store.unit_of_work() as uow:
            if await uow.get_verified_proof(user_id, quest_id):
                raise AlreadyVerified()
            await uow.add_attempt(attempt)

        # Format gate: a malformed account never touches the attempt budget
        if not provider.validate_account_format(account):
            await self._finish_attempt(attempt, AttemptOutcome.REJECTED, error=InvalidAccountFormat.code)
            raise InvalidAccountFormat(
                f"Invalid {rules.name} account format. Expected: {rules.account_format_hint}"
            )

        decision = await self.limiter.allow(
            f"verify:{user_id}:{game}",
            self.settings.verification_attempt_limit,
            self.settings.verification_attempt_window_seconds,
        )
        if not decision:
            await self._finish_attempt(attempt, AttemptOutcome.REJECTED, error=RateLimited.code)
            logger.warning("verification_rate_limited", user_id=user_id, game=game)
            raise RateLimited(decision.retry_after)

        try:
            stats, from_cache = await self._fetch(rules, provider, account)
        except asyncio.CancelledError:
            await asyncio.shield(self._finish_attempt(attempt, AttemptOutcome.ERRORED, error="cancelled"))
            raise
        except VerificationError as exc:
            await self._finish_attempt(attempt, AttemptOutcome.ERRORED, error=exc.code)
            logger.info(
                "verification_failed", user_id=user_id, game=game,
                account=mask_account(account), error=exc.code,
            )
            raise
        except Exception:
            await self._finish_attempt(attempt, AttemptOutcome.ERRORED, error="fetch_failed")
            raise

        try:
            assessment = await self.fraud.score(game, account, stats, user_id)
            skill = self.skill.assess(game, stats)
            commitment = self.commitments.commit(game, account, stats, now)
            envelope = self.commitments.build_envelope(commitment)
        except Exception as exc:
            await self._finish_attempt(attempt, AttemptOutcome.ERRORED, error=f"{type(exc).__name__}: {exc}")
            logger.exception("verification_scoring_failed", user_id=user_id, game=game)
            raise InternalScoringFailure() from exc

        outcome = _OUTCOMES[risk_band(
            assessment.score,
            self.settings.fraud_review_threshold,
            self.settings.fraud_reject_threshold,
        )]
        proof = ProofRecord(
            proof_id=str(uuid.uuid4()),
            user_id=user_id,
            quest_id=quest_id,
            game=game,
            game_account=account,
            api_source=rules.api_source,
            raw_stats=stats,
            fraud_score=assessment.score,
            flags=list(assessment.flags),
            skill_tier=skill.tier.value,
            verification_hash=commitment,
            envelope=envelope.to_dict(),
            verified=outcome == "accepted",
            needs_manual_review=outcome == "under_review",
            submitted_at=now,
            last_verified=now if outcome == "accepted" else None,
        )
        attempt.outcome = _ATTEMPT_OUTCOMES[outcome]
        attempt.fraud_score = assessment.score

        try:
            async with self.store.unit_of_work() as uow:
                if await uow.get_verified_proof(user_id, quest_id):
                    raise AlreadyVerified()
                await uow.add_proof(proof)
                if proof.verified:
                    await self.ledger.apply_score(uow, user_id, quest_id, quest.world_id, proof.skill_tier, now)
                elif proof.needs_manual_review:
                    await self.ledger.mark_in_progress(uow, user_id, quest_id)
                await uow.save_attempt(attempt)
        except (AlreadyVerified, PersistenceConflict) as exc:
            await self._finish_attempt(
                attempt, AttemptOutcome.REJECTED, error=AlreadyVerified.code, fraud_score=assessment.score,
            )
            await self._raise_if_verified(user_id, quest_id, exc)
            raise
        except asyncio.CancelledError:
            await asyncio.shield(self._finish_attempt(
                attempt, AttemptOutcome.ERRORED, error="cancelled", fraud_score=assessment.score,
            ))
            raise
        except Exception as exc:
            await self._finish_attempt(
                attempt, AttemptOutcome.ERRORED,
                error=f"{type(exc).__name__}: {exc}", fraud_score=assessment.score,
            )
            logger.exception("verification_persist_failed", user_id=user_id, game=game, quest_id=quest_id)
            raise InternalScoringFailure() from exc

        logger.info(
            "verification_completed",
            user_id=user_id,
            game=game,
            account=mask_account(account),
            quest_id=quest_id,
            proof_id=proof.proof_id,
            outcome=outcome,
            fraud_score=assessment.score,
            skill_tier=proof.skill_tier,
        )

        warnings: list[str] = []
        if proof.verified:
            proof.blockchain_tx = await self._submit_to_chain(proof, envelope, warnings)
        return self._result(proof, warnings, from_cache=from_cache)

    # ------------------------------------------------------------------
    # Re-verification
    # ------------------------------------------------------------------

    async def reverify(self, proof_id: str, requester_id: int, *, is_admin: bool = False) -> ReverificationResult:
        async with self.store.unit_of_work() as uow:
            proof = await uow.get_proof(proof_id)
        if proof is None:
            raise ProofNotFound()
        if proof.user_id != requester_id and not is_admin:
            raise NotProofOwner()

        now = self._clock()
        max_age = timedelta(hours=self.settings.reverify_max_age_hours)
        if now - proof.submitted_at > max_age:
            raise ReverificationExpired()

        rules = self.registry.get(proof.game)
        provider = self._provider(proof.game)
        fresh, _ = await self._fetch(rules, provider, proof.game_account, refresh=True)

        try:
            assessment = await self.fraud.score(proof.game, proof.game_account, fresh, proof.user_id)
            commitment = self.commitments.commit(proof.game, proof.game_account, fresh, now)
            report = compare_stats(
                rules.parse(proof.raw_stats).model_dump(mode="json"),
                rules.parse(fresh).model_dump(mode="json"),
                rules.cumulative_fields,
            )
        except Exception as exc:
            logger.exception("reverification_scoring_failed", proof_id=proof_id)
            raise InternalScoringFailure() from exc

        still_valid = (
            report.score > self.settings.reverify_consistency_threshold
            and assessment.score < self.settings.fraud_reject_threshold
        )

        async with self.store.unit_of_work() as uow:
            current = await uow.get_proof(proof_id)
            if current is None:
                raise ProofNotFound()
            revoked = current.verified and not still_valid
            current.last_verified = now
            current.reverification = {
                "at": now.isoformat(),
                "consistency_score": report.score,
                "fraud_score": assessment.score,
                "flags": list(assessment.flags),
                "verification_hash": commitment,
                "still_valid": still_valid,
                "warnings": list(report.warnings),
            }
            if revoked:
                current.verified = False
                await self.ledger.revoke(uow, current.user_id, current.quest_id)
            await uow.save_proof(current)

        logger.info(
            "proof_reverified",
            proof_id=proof_id,
            requester_id=requester_id,
            consistency_score=report.score,
            fraud_score=assessment.score,
            still_valid=still_valid,
            revoked=revoked,
        )
        return ReverificationResult(
            proof_id=proof_id,
            verified=current.verified,
            still_valid=still_valid,
            consistency_score=report.score,
            fraud_score=assessment.score,
            verification_hash=commitment,
            revoked=revoked,
            flags=list(assessment.flags),
            warnings=list(report.warnings),
        )

    # ------------------------------------------------------------------
    # Manual review
    # ------------------------------------------------------------------

    async def resolve_review(self, proof_id: str, reviewer_id: int, approve: bool) -> VerificationResult:
        """Promote an UnderReview proof to Accepted or Rejected."""
        async with self.store.unit_of_work() as uow:
            proof = await uow.get_proof(proof_id)
        if proof is None:
            raise ProofNotFound()
        if not proof.needs_manual_review or proof.verified:
            raise NotUnderReview()
        quest = await self.quests.get_quest(proof.quest_id)
        if quest is None:
            raise QuestNotFound(f"Quest {proof.quest_id} not found")

        now = self._clock()
        try:
            async with self.store.unit_of_work() as uow:
                proof = await uow.get_proof(proof_id)
                if proof is None:
                    raise ProofNotFound()
                if not proof.needs_manual_review or proof.verified:
                    raise NotUnderReview()
                proof.needs_manual_review = False
                proof.reviewed_by = reviewer_id
                if approve:
                    if await uow.get_verified_proof(proof.user_id, proof.quest_id):
                        raise AlreadyVerified()
                    proof.verified = True
                    proof.last_verified = now
                await uow.save_proof(proof)
                if approve:
                    await self.ledger.apply_score(
                        uow, proof.user_id, proof.quest_id, quest.world_id, proof.skill_tier, now,
                    )
        except PersistenceConflict as exc:
            await self._raise_if_verified(proof.user_id, proof.quest_id, exc)
            raise

        logger.info(
            "review_resolved", proof_id=proof_id, reviewer_id=reviewer_id,
            approved=approve, user_id=proof.user_id, quest_id=proof.quest_id,
        )
        warnings: list[str] = []
        if proof.verified:
            envelope = ProofEnvelope.from_dict(proof.envelope)
            proof.blockchain_tx = await self._submit_to_chain(proof, envelope, warnings)
        return self._result(proof, warnings)

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    async def delete_verification(self, proof_id: str, requester_id: int, *, is_admin: bool = False) -> None:
        async with self.store.unit_of_work() as uow:
            proof = await uow.get_proof(proof_id)
            if proof is None:
                raise ProofNotFound()
            if proof.user_id != requester_id and not is_admin:
                raise NotProofOwner()
            if proof.verified:
                raise ProofNotDeletable()
            await uow.delete_proof(proof_id)
        logger.info("proof_deleted", proof_id=proof_id, requester_id=requester_id)

    async def abandon_quest(self, user_id: int, quest_id: int) -> ProgressRecord:
        async with self.store.unit_of_work() as uow:
            progress = await self.ledger.abandon(uow, user_id, quest_id)
        logger.info("quest_abandoned", user_id=user_id, quest_id=quest_id)
        return progress

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _provider(self, game: str) -> GameStatsProvider:
        try:
            return self.providers[game]
        except KeyError:
            raise UnsupportedGame(f"No statistics provider configured for {game}") from None

    async def _fetch(
        self,
        rules: GameRules,
        provider: GameStatsProvider,
        account: str,
        *,
        refresh: bool = False,
    ) -> tuple[dict[str, Any], bool]:
        """Read-through fetch bounded by the fetch timeout. Provider errors come out translated."""

        async def fetch_upstream() -> dict[str, Any]:
            requests, window = rules.upstream_quota
            quota = await self.limiter.allow(f"upstream:{rules.game_id}", requests, window)
            if not quota:
                raise UpstreamRateLimited(retry_after=quota.retry_after)
            return await provider.fetch_stats(account)

        if refresh:
            await self.cache.invalidate(rules.game_id, account)
        try:
            return await asyncio.wait_for(
                self.cache.get_or_fetch(rules.game_id, account, fetch_upstream, self.settings.stats_cache_ttl_seconds),
                timeout=self.settings.fetch_timeout_seconds,
            )
        except TimeoutError:
            logger.warning("stats_fetch_timeout", game=rules.game_id, account=mask_account(account))
            raise UpstreamUnavailable() from None
        except FetchError as exc:
            logger.warning(
                "stats_fetch_failed", game=rules.game_id, account=mask_account(account),
                error=type(exc).__name__, detail=str(exc),
            )
            raise self._translate(rules, exc) from exc

    @staticmethod
    def _translate(rules: GameRules, exc: FetchError) -> VerificationError:
        if isinstance(exc, NotFound):
            return AccountNotFound()
        if isinstance(exc, Forbidden):
            return AccountPrivate()
        if isinstance(exc, UpstreamRateLimited):
            return RateLimited(
                exc.retry_after,
                f"{rules.name} API rate limit reached. Please try again in a few minutes.",
            )
        if isinstance(exc, Unauthorized):
            return UpstreamUnauthorized()
        return UpstreamUnavailable()

    async def _finish_attempt(
        self,
        attempt: AttemptRecord,
        outcome: AttemptOutcome,
        *,
        error: str | None = None,
        fraud_score: int | None = None,
    ) -> None:
        attempt.outcome = outcome
        attempt.error = error
        if fraud_score is not None:
            attempt.fraud_score = fraud_score
        async with self.store.unit_of_work() as uow:
            await uow.save_attempt(attempt)

    async def _raise_if_verified(self, user_id: int, quest_id: int, cause: Exception) -> None:
        """A lost accept race surfaces as AlreadyVerified, never as a raw conflict."""
        if isinstance(cause, AlreadyVerified):
            return
        async with self.store.unit_of_work() as uow:
            existing = await uow.get_verified_proof(user_id, quest_id)
        if existing is not None:
            raise AlreadyVerified() from cause

    async def _submit_to_chain(self, proof: ProofRecord, envelope: ProofEnvelope, warnings: list[str]) -> str | None:
        """Best effort. A failure leaves the proof accepted and adds a warning."""
        try:
            tx = await asyncio.wait_for(
                self.chain.submit(envelope, proof.user_id, proof.quest_id),
                timeout=self.settings.chain_submit_timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "chain_submission_failed", proof_id=proof.proof_id,
                user_id=proof.user_id, quest_id=proof.quest_id, error=repr(exc),
            )
            warnings.append(CHAIN_FAILURE_WARNING)
            return None

        if tx:
            async with self.store.unit_of_work() as uow:
                current = await uow.get_proof(proof.proof_id)
                if current is not None:
                    current.blockchain_tx = tx
                    await uow.save_proof(current)
        return tx

    def _result(self, proof: ProofRecord, warnings: list[str], *, from_cache: bool = False) -> VerificationResult:
        expose = self.settings.expose_fraud_details
        return VerificationResult(
            outcome=proof.outcome,
            proof_id=proof.proof_id,
            game=proof.game,
            quest_id=proof.quest_id,
            skill_tier=proof.skill_tier,
            verification_hash=proof.verification_hash,
            fraud_score=proof.fraud_score if expose else None,
            flags=list(proof.flags) if expose else None,
            warnings=warnings,
            blockchain_tx=proof.blockchain_tx,
            from_cache=from_cache,
        )
