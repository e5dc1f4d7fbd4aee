"""Verification API, a thin adapter over the orchestrator and read services."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from questproof.dependencies import Identity, get_identity, get_services, require_admin
from questproof.services import Services
from questproof.verification.schemas import (
    AnalyticsResponse,
    AttemptResponse,
    FraudReportsResponse,
    GamesResponse,
    GameSummaryResponse,
    HistoryResponse,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    ProgressResponse,
    ProofResponse,
    ReverificationResponse,
    ReviewRequest,
    VerificationRequest,
    VerificationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Verification"])


@router.get("/games", response_model=GamesResponse)
async def list_games(services: Services = Depends(get_services)) -> GamesResponse:
    """Supported games with verification counts and success rate."""
    summaries = await services.history.supported_games()
    return GamesResponse(games=[GameSummaryResponse.model_validate(s) for s in summaries])


@router.post("/verifications", response_model=VerificationResponse)
async def submit_verification(
    body: VerificationRequest,
    response: Response,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> VerificationResponse:
    """Verify a game account for a quest. 202 while the proof awaits manual review."""
    result = await services.orchestrator.submit_verification(
        identity.user_id, body.game, body.game_account, body.quest_id,
    )
    if result.outcome == "under_review":
        response.status_code = status.HTTP_202_ACCEPTED
    return VerificationResponse.model_validate(result)


@router.get("/verifications", response_model=HistoryResponse)
async def verification_history(
    game: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status", pattern="^(verified|pending)$"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> HistoryResponse:
    page, analytics = await services.history.history(
        identity.user_id, game=game, status=status_filter, limit=limit, offset=offset,
    )
    return HistoryResponse(
        proofs=[ProofResponse.model_validate(p) for p in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        analytics=AnalyticsResponse.model_validate(analytics),
    )


@router.get("/verifications/attempts", response_model=list[AttemptResponse])
async def my_attempts(
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> list[AttemptResponse]:
    """The caller's recent submission attempts, newest first."""
    attempts = await services.history.recent_attempts(identity.user_id, limit)
    return [
        AttemptResponse(
            attempt_id=a.attempt_id,
            game=a.game,
            quest_id=a.quest_id,
            outcome=a.outcome.value,
            fraud_score=a.fraud_score,
            error=a.error,
            created_at=a.created_at,
        )
        for a in attempts
    ]


@router.get("/games/{game}/me", response_model=list[ProofResponse])
async def my_game_proofs(
    game: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> list[ProofResponse]:
    """The caller's latest verified proofs for one game."""
    proofs = await services.history.latest_verified(identity.user_id, game)
    return [ProofResponse.model_validate(p) for p in proofs]


@router.delete("/verifications/{proof_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_verification(
    proof_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Response:
    await services.orchestrator.delete_verification(proof_id, identity.user_id, is_admin=identity.is_admin)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/verifications/{proof_id}/reverify", response_model=ReverificationResponse)
async def reverify(
    proof_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> ReverificationResponse:
    result = await services.orchestrator.reverify(proof_id, identity.user_id, is_admin=identity.is_admin)
    return ReverificationResponse.model_validate(result)


@router.post("/verifications/{proof_id}/review", response_model=VerificationResponse)
async def resolve_review(
    proof_id: str,
    body: ReviewRequest,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> VerificationResponse:
    """Admin decision on a proof held for manual review."""
    result = await services.orchestrator.resolve_review(proof_id, admin.user_id, body.approve)
    return VerificationResponse.model_validate(result)


@router.get("/admin/fraud-reports", response_model=FraudReportsResponse)
async def fraud_reports(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> FraudReportsResponse:
    page = await services.history.fraud_reports(limit=limit, offset=offset)
    return FraudReportsResponse(
        proofs=[ProofResponse.model_validate(p) for p in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/worlds/{world_id}/leaderboard", response_model=LeaderboardResponse)
async def world_leaderboard(
    world_id: int,
    limit: int = Query(50, ge=1, le=100),
    services: Services = Depends(get_services),
) -> LeaderboardResponse:
    ranked = await services.leaderboard.ranked_top(world_id, limit)
    return LeaderboardResponse(
        world_id=world_id,
        entries=[
            LeaderboardEntryResponse(
                rank=rank,
                user_id=e.user_id,
                score=e.score,
                last_updated=e.last_updated,
            )
            for rank, e in ranked
        ],
    )


@router.get("/worlds/{world_id}/leaderboard/me", response_model=LeaderboardEntryResponse)
async def my_leaderboard_entry(
    world_id: int,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> LeaderboardEntryResponse:
    entry = await services.leaderboard.entry(identity.user_id, world_id)
    rank = await services.leaderboard.rank(identity.user_id, world_id)
    if entry is None or rank is None:
        raise HTTPException(status_code=404, detail="No leaderboard entry for this world")
    return LeaderboardEntryResponse(
        rank=rank, user_id=entry.user_id, score=entry.score, last_updated=entry.last_updated,
    )


@router.post("/quests/{quest_id}/abandon", response_model=ProgressResponse)
async def abandon_quest(
    quest_id: int,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> ProgressResponse:
    progress = await services.orchestrator.abandon_quest(identity.user_id, quest_id)
    return ProgressResponse(
        quest_id=progress.quest_id,
        status=progress.status.value,
        score=progress.score,
        completed_at=progress.completed_at,
    )
