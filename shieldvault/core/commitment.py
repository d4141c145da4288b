"""
Commitment points and Merkle leaves for private state.

leaf = H(P.x, P.y) where
P = pedersen_commit5(shares, nullifier, spending_key, unlocks_at, prev_nonce_commitment)

This has to match the leaf function used by the ledger and by the circuit
bit for bit, otherwise reconstruction reports a missing leaf.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

from .field import field_add
from .pedersen import DISCOVERY_INITIAL_POINT, G, Point, pedersen_commit, pedersen_commit5, point_add, point_to_ints, scalar_mul
from .poseidon2 import poseidon2_hash


def commitment_point(
    shares: int,
    nullifier: int,
    spending_key: int,
    unlocks_at: int,
    prev_nonce_commitment: int,
) -> Point:
    return pedersen_commit5(shares, nullifier, spending_key, unlocks_at, prev_nonce_commitment)


def leaf_hash(pt: Point) -> int:
    x, y = point_to_ints(pt)
    return poseidon2_hash([x, y])


def reconstruct_leaf(
    shares: int,
    nullifier: int,
    spending_key: int,
    unlocks_at: int,
    prev_nonce_commitment: int,
) -> int:
    return leaf_hash(commitment_point(shares, nullifier, spending_key, unlocks_at, prev_nonce_commitment))


def add_minted_shares(pt: Point, shares_minted: int) -> Point:
    """Deposit increment applied by the vault: `P + shares_minted*G`."""
    return point_add(pt, scalar_mul(G, shares_minted))


@dataclass
class NonceDiscoveryAggregate:
    """
    Running aggregate of `pedersen_commit(1, nonce_commitment)` over the
    nonces of one chain, starting from a fixed initial point. The scalar
    sums are tracked alongside so the opening can be checked.
    """

    point: Point = DISCOVERY_INITIAL_POINT
    m: int = 0
    r: int = 0
    count: int = field(default=0)

    def absorb(self, nonce_commitment_value: int) -> None:
        self.point = point_add(self.point, pedersen_commit(1, nonce_commitment_value))
        self.m = field_add(self.m, 1)
        self.r = field_add(self.r, nonce_commitment_value)
        self.count += 1

    def coordinates(self) -> Tuple[int, int]:
        return point_to_ints(self.point)
