"""Re-verification of stored proofs against freshly fetched stats."""

from __future__ import annotations

import copy
from datetime import timedelta

import pytest
from conftest import LOL_ACCOUNT, LOL_CLEAN, LOL_FRAUD, LOL_FRAUD_ACCOUNT, WORLD_ID

from questproof.errors import NotProofOwner, ProofNotFound, ReverificationExpired
from questproof.services import Services
from questproof.store import ProgressStatus

pytestmark = pytest.mark.asyncio

LOL = "league_of_legends"


async def _accepted_proof(services: Services, user_id: int = 1) -> str:
    result = await services.orchestrator.submit_verification(user_id, LOL, LOL_ACCOUNT, 1)
    assert result.accepted
    return result.proof_id


class TestReverify:
    async def test_unchanged_stats_stay_valid(self, services: Services) -> None:
        proof_id = await _accepted_proof(services)
        result = await services.orchestrator.reverify(proof_id, 1)

        assert result.still_valid
        assert result.verified
        assert not result.revoked
        assert result.consistency_score == 1.0
        assert result.fraud_score == 0
        assert len(result.verification_hash) == 64
        # Re-verification always goes upstream
        assert services.providers[LOL].calls == 2

        async with services.store.unit_of_work() as uow:
            proof = await uow.get_proof(proof_id)
        assert proof.reverification["still_valid"] is True
        assert proof.reverification["consistency_score"] == 1.0
        assert proof.last_verified >= proof.submitted_at

    async def test_normal_progress_stays_valid(self, services: Services) -> None:
        proof_id = await _accepted_proof(services)
        progressed = copy.deepcopy(LOL_CLEAN)
        progressed["solo_queue"].update({"wins": 112, "losses": 91, "league_points": 55, "win_rate": 55.2})
        services.providers[LOL].set_account(LOL_ACCOUNT, progressed)

        result = await services.orchestrator.reverify(proof_id, 1)
        assert result.still_valid
        assert 0.7 < result.consistency_score < 1.0
        assert result.warnings == []

    async def test_suspicious_change_revokes(self, services: Services) -> None:
        proof_id = await _accepted_proof(services)
        services.providers[LOL].set_account(LOL_ACCOUNT, copy.deepcopy(LOL_FRAUD))

        result = await services.orchestrator.reverify(proof_id, 1)

        assert not result.still_valid
        assert result.revoked
        assert not result.verified
        assert result.fraud_score == 70
        assert any("solo_queue.wins decreased" in w for w in result.warnings)

        async with services.store.unit_of_work() as uow:
            proof = await uow.get_proof(proof_id)
            progress = await uow.get_progress(1, 1)
            entry = await uow.get_leaderboard_entry(1, WORLD_ID)
        assert not proof.verified
        assert progress.status == ProgressStatus.COMPLETED
        # Leaderboard totals only grow
        assert entry.score == 250

    async def test_revoked_quest_can_be_verified_again(self, services: Services) -> None:
        proof_id = await _accepted_proof(services)
        services.providers[LOL].set_account(LOL_ACCOUNT, copy.deepcopy(LOL_FRAUD))
        await services.orchestrator.reverify(proof_id, 1)

        services.providers[LOL].set_account(LOL_ACCOUNT, copy.deepcopy(LOL_CLEAN))
        await services.cache.invalidate(LOL, LOL_ACCOUNT)
        result = await services.orchestrator.submit_verification(1, LOL, LOL_ACCOUNT, 1)
        assert result.accepted

    async def test_unverified_proof_is_never_promoted(self, services: Services) -> None:
        rejected = await services.orchestrator.submit_verification(1, LOL, LOL_FRAUD_ACCOUNT, 1)
        services.providers[LOL].set_account(LOL_FRAUD_ACCOUNT, copy.deepcopy(LOL_CLEAN))

        result = await services.orchestrator.reverify(rejected.proof_id, 1)
        assert result.fraud_score == 0
        assert not result.verified
        assert not result.revoked
        async with services.store.unit_of_work() as uow:
            assert await uow.get_progress(1, 1) is None

    async def test_owner_or_admin_only(self, services: Services) -> None:
        proof_id = await _accepted_proof(services)
        with pytest.raises(NotProofOwner):
            await services.orchestrator.reverify(proof_id, 2)
        result = await services.orchestrator.reverify(proof_id, 2, is_admin=True)
        assert result.still_valid

    async def test_unknown_proof(self, services: Services) -> None:
        with pytest.raises(ProofNotFound):
            await services.orchestrator.reverify("missing", 1)

    async def test_old_proofs_expire(self, services: Services) -> None:
        proof_id = await _accepted_proof(services)
        async with services.store.unit_of_work() as uow:
            proof = await uow.get_proof(proof_id)
            proof.submitted_at -= timedelta(hours=25)
            await uow.save_proof(proof)

        with pytest.raises(ReverificationExpired):
            await services.orchestrator.reverify(proof_id, 1)
        assert services.providers[LOL].calls == 1
