"""
Merkle membership proofs for reconstructed leaves.

The ledger's precomputed sibling path is used when it offers one; otherwise
the full leaf set is fetched and the proof is built locally. Either way the
proof must recompute to the root the caller already knows.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..config import LedgerQueryConfig
from ..core.merkle import LeanIMT, MerkleProof, depth_for_size, verify_proof
from ..errors import LeafNotFoundError, RootMismatchError
from .ledger import Ledger, call_with_retry


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def prove_membership(
    ledger: Ledger,
    token: str,
    leaf: int,
    known_root: int,
    *,
    query: Optional[LedgerQueryConfig] = None,
) -> MerkleProof:
    q = query or LedgerQueryConfig()

    async def read(what: str, fn: Callable[[], Awaitable[T]]) -> T:
        return await call_with_retry(fn, timeout_s=q.timeout_s, max_attempts=q.max_attempts, backoff_s=q.backoff_s, what=what)

    index = await read("leaf index", lambda: ledger.get_leaf_index(token, leaf))
    if index is not None:
        depth = await read("tree depth", lambda: ledger.get_depth(token))
        served = await read("merkle proof", lambda: ledger.get_merkle_proof(token, index))
        if served is not None:
            logger.debug("using ledger-provided proof for leaf index %d", index)
            proof = MerkleProof(
                leaf=leaf,
                index=served.index,
                siblings=tuple(served.siblings[:depth]),
                root=known_root,
                depth=depth,
            )
            if not verify_proof(proof):
                raise RootMismatchError(
                    "ledger-provided proof does not recompute to the known root",
                    token=token,
                    leaf=leaf,
                    root=known_root,
                    index=served.index,
                )
            return proof

    logger.debug("building proof locally from the full leaf set")
    leaves = await read("leaf set", lambda: ledger.get_leaves(token))
    tree = LeanIMT.from_leaves(leaves)
    local_index = tree.index_of(leaf)
    if local_index is None:
        raise LeafNotFoundError("leaf not present in the ledger's leaf set", token=token, leaf=leaf, root=known_root)
    if tree.root != known_root:
        raise RootMismatchError(
            f"local tree of {tree.size} leaves (depth {depth_for_size(tree.size)}) has a different root",
            token=token,
            leaf=leaf,
            root=known_root,
            index=local_index,
        )
    proof = tree.generate_proof(local_index)
    if not verify_proof(proof):
        raise RootMismatchError("local proof failed to verify", token=token, leaf=leaf, root=known_root, index=local_index)
    return proof
