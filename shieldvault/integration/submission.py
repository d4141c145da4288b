"""
Submission of a finished proof.

Sending a transaction is outside this package; `Submitter` is the seam a
wallet or relayer implements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from ..core.field import require_field
from ..state.canonical import canonical_json_bytes, int_to_bytes32_hex, sha256_hex


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionPayload:
    proof: bytes
    public_signals: Tuple[str, ...]
    call_data: bytes = b""

    @classmethod
    def build(cls, proof: bytes, signals: Sequence[int], call_data: bytes = b"") -> "SubmissionPayload":
        encoded = tuple(int_to_bytes32_hex(require_field(s, name="public signal")) for s in signals)
        return cls(proof=bytes(proof), public_signals=encoded, call_data=bytes(call_data))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proof": "0x" + self.proof.hex(),
            "publicInputs": list(self.public_signals),
            "callData": "0x" + self.call_data.hex(),
        }


class Submitter:
    def send(self, payload: SubmissionPayload) -> str:
        raise NotImplementedError


class RecordingSubmitter(Submitter):
    """Keeps payloads in memory; the transaction id is a digest of the payload."""

    def __init__(self) -> None:
        self.sent: List[SubmissionPayload] = []

    def send(self, payload: SubmissionPayload) -> str:
        self.sent.append(payload)
        tx_id = sha256_hex(canonical_json_bytes(payload.to_dict()))
        logger.info("recorded submission %s (%d public inputs)", tx_id, len(payload.public_signals))
        return tx_id
