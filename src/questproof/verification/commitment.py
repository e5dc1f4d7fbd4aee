"""Proof commitments and envelopes.

The commitment is a SHA-256 digest over the canonical JSON form of
(game, account, stats, timestamp). The envelope is the hand-off shape
for the external ZK backend: it is tamper-evident (keyed with a server
secret) but makes no soundness claim of its own.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def canonical_json(value: Any) -> str:  # noqa: ANN401
    """Key-sorted, whitespace-free JSON so equal inputs serialise identically."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def _iso(timestamp: datetime) -> str:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).isoformat()


@dataclass(frozen=True)
class ProofEnvelope:
    circuit_proof: str
    public_inputs: list[str] = field(default_factory=list)
    verification_key: str = ""
    protocol_version: str = "1.0"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProofEnvelope:
        return cls(
            circuit_proof=data["circuit_proof"],
            public_inputs=list(data.get("public_inputs", [])),
            verification_key=data.get("verification_key", ""),
            protocol_version=data.get("protocol_version", "1.0"),
        )


class ProofCommitmentService:
    def __init__(self, secret: str, protocol_version: str = "1.0") -> None:
        if not secret:
            raise ValueError("commitment secret must not be empty")
        self._secret = secret.encode("utf-8")
        self.protocol_version = protocol_version
        self.verification_key = hmac.new(self._secret, b"questproof:verification-key", hashlib.sha256).hexdigest()

    def commit(self, game: str, account: str, stats: Mapping[str, Any], timestamp: datetime) -> str:
        payload = {
            "game": game,
            "account": account,
            "stats": dict(stats),
            "timestamp": _iso(timestamp),
        }
        return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()

    def build_envelope(self, commitment: str) -> ProofEnvelope:
        return ProofEnvelope(
            circuit_proof=self._sign(commitment),
            public_inputs=[commitment],
            verification_key=self.verification_key,
            protocol_version=self.protocol_version,
        )

    def verify_envelope(self, envelope: ProofEnvelope, commitment: str) -> bool:
        """True if the envelope was issued here for exactly this commitment."""
        if envelope.public_inputs != [commitment]:
            return False
        if envelope.verification_key != self.verification_key:
            return False
        return hmac.compare_digest(envelope.circuit_proof, self._sign(commitment))

    def _sign(self, commitment: str) -> str:
        return hmac.new(self._secret, commitment.encode("ascii"), hashlib.sha256).hexdigest()
