"""
Rebuild the private state the next proof consumes.
"""

from __future__ import annotations

from typing import Optional

from ..config import LedgerQueryConfig
from ..core.commitment import reconstruct_leaf
from ..core.ctr_cipher import NULLIFIER_SLOT, decrypt
from ..core.keys import AccountKeys
from ..errors import LeafNotFoundError, NonceUnknownError, NotInitializedError, ReconstructionError
from ..state.records import PrivateStateSnapshot
from .discovery import DiscoveryResult
from .ledger import Ledger, call_with_retry


async def load_previous_state(
    ledger: Ledger,
    keys: AccountKeys,
    discovery: DiscoveryResult,
    *,
    query: Optional[LedgerQueryConfig] = None,
) -> PrivateStateSnapshot:
    """
    State at `previous_nonce`, with its leaf checked against the ledger.

    A stale discovery result is not authoritative, so it blocks here rather
    than letting a nonce be guessed from cached balances.
    """
    q = query or LedgerQueryConfig()
    if discovery.stale:
        raise NonceUnknownError(f"current nonce for {keys.token} is unknown: {discovery.warning or 'stale discovery'}")
    if not discovery.initialized:
        raise NotInitializedError(f"no private balance for {keys.token}; initialize first")

    nonce = discovery.previous_nonce
    entry = discovery.latest
    if entry is None:
        raise ReconstructionError("no balance entry for previous nonce", token=keys.token, nonce=nonce)

    nc = keys.nonce_commitment(nonce)
    nullifier = entry.nullifier
    if nullifier is None:
        if nonce == 0:
            nullifier = 0
        else:
            info = await call_with_retry(
                lambda: ledger.get_nonce_commitment_info(nc),
                timeout_s=q.timeout_s,
                max_attempts=q.max_attempts,
                backoff_s=q.backoff_s,
                what=f"nonce commitment info (nonce {nonce})",
            )
            if info is None:
                raise ReconstructionError("record for previous nonce disappeared", token=keys.token, nonce=nonce)
            nullifier = decrypt(info.encrypted_nullifier, keys.viewing_key, NULLIFIER_SLOT)

    leaf = reconstruct_leaf(entry.shares, nullifier, keys.spending_key, entry.unlocks_at, nc)
    present = await call_with_retry(
        lambda: ledger.has_leaf(keys.token, leaf),
        timeout_s=q.timeout_s,
        max_attempts=q.max_attempts,
        backoff_s=q.backoff_s,
        what="leaf lookup",
    )
    if not present:
        root = await call_with_retry(
            lambda: ledger.get_root(keys.token),
            timeout_s=q.timeout_s,
            max_attempts=q.max_attempts,
            backoff_s=q.backoff_s,
            what="root",
        )
        raise LeafNotFoundError("reconstructed leaf is not in the tree", token=keys.token, nonce=nonce, leaf=leaf, root=root)

    return PrivateStateSnapshot(
        nonce=nonce,
        token=keys.token,
        shares=entry.shares,
        nullifier=nullifier,
        unlocks_at=entry.unlocks_at,
        nonce_commitment=nc,
        leaf=leaf,
    )
