"""
Read-only ledger interface.

The vault contract (Merkle tree, nonce-commitment registry, share/asset
conversion) is an external collaborator. Everything the client needs from it
goes through `Ledger`; implementations translate these calls into RPC reads.

All reads are coroutines so that one caller-supplied timeout can bound each
query (`call_with_retry`).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Tuple, TypeVar

from ..errors import TransientLedgerError
from ..state.records import OperationType


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class NonceCommitmentInfo:
    operation_type: OperationType
    shares_minted: int
    encrypted_balance: int
    encrypted_nullifier: int


@dataclass(frozen=True)
class CommitmentState:
    """Public per-nonce-commitment fields; `public_balance` is set for nonce 0."""

    public_balance: int
    unlocks_at: int = 0


@dataclass(frozen=True)
class LedgerMerkleProof:
    index: int
    siblings: Tuple[int, ...]


class Ledger:
    """Interface for ledger reads."""

    async def get_root(self, token: str) -> int:
        raise NotImplementedError

    async def get_depth(self, token: str) -> int:
        raise NotImplementedError

    async def has_leaf(self, token: str, leaf: int) -> bool:
        raise NotImplementedError

    async def get_leaf_index(self, token: str, leaf: int) -> Optional[int]:
        raise NotImplementedError

    async def get_leaves(self, token: str) -> Sequence[int]:
        raise NotImplementedError

    async def get_merkle_proof(self, token: str, index: int) -> Optional[LedgerMerkleProof]:
        """Precomputed sibling path, or None when the ledger cannot serve one."""
        return None

    async def get_nonce_commitment_info(self, nonce_commitment: int) -> Optional[NonceCommitmentInfo]:
        raise NotImplementedError

    async def get_commitment_state(self, nonce_commitment: int) -> Optional[CommitmentState]:
        raise NotImplementedError

    async def convert_to_shares(self, token: str, assets: int) -> Optional[int]:
        """None when no vault exists for the token."""
        raise NotImplementedError

    async def convert_to_assets(self, token: str, shares: int) -> Optional[int]:
        raise NotImplementedError

    async def token_decimals(self, token: str) -> int:
        raise NotImplementedError


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    timeout_s: float,
    max_attempts: int = 1,
    backoff_s: float = 0.0,
    what: str = "ledger query",
) -> T:
    """
    Run one ledger read with a per-attempt timeout.

    Timeouts and TransientLedgerError are retried up to `max_attempts`;
    any other exception propagates on the first occurrence.
    """
    if max_attempts <= 0:
        raise ValueError("max_attempts must be positive")
    if timeout_s <= 0:
        raise ValueError("timeout_s must be positive")
    attempt = 0
    while True:
        attempt += 1
        try:
            return await asyncio.wait_for(fn(), timeout=timeout_s)
        except asyncio.TimeoutError as exc:
            if attempt >= max_attempts:
                raise TransientLedgerError(f"{what} timed out after {timeout_s}s") from exc
            logger.warning("%s timed out (attempt %d/%d)", what, attempt, max_attempts)
        except TransientLedgerError as exc:
            if attempt >= max_attempts:
                raise
            logger.warning("%s failed (attempt %d/%d): %s", what, attempt, max_attempts, exc)
        if backoff_s > 0:
            await asyncio.sleep(backoff_s * attempt)
