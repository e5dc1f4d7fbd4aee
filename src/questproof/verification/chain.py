"""On-chain submission side channel.

Submission happens only after a proof is accepted and never feeds back
into the verification decision.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from questproof.verification.commitment import ProofEnvelope

logger = logging.getLogger(__name__)


class ChainSubmissionError(Exception):
    pass


class ChainSubmitter(ABC):
    @abstractmethod
    async def submit(self, envelope: ProofEnvelope, user_id: int, quest_id: int) -> str | None:
        """Return a transaction reference, or None when nothing was submitted."""


class NullChainSubmitter(ChainSubmitter):
    """Used when no chain backend is configured."""

    async def submit(self, envelope: ProofEnvelope, user_id: int, quest_id: int) -> str | None:
        logger.debug("Chain submission disabled; proof for user %s quest %s kept off-chain", user_id, quest_id)
        return None
