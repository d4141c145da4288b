"""
Pure cryptographic core: field, hashes, commitments, Merkle trees, orders.
"""

from .field import FIELD_MODULUS, parse_field, require_field, to_field
from .poseidon2 import hash2, poseidon2_hash
from .keys import AccountKeys, derive_user_key
from .ctr_cipher import BALANCE_SLOT, NULLIFIER_SLOT, decrypt, encrypt
from .commitment import NonceDiscoveryAggregate, commitment_point, leaf_hash, reconstruct_leaf
from .merkle import LeanIMT, MerkleProof, compute_root, verify_proof
from .orders import LiquidityOrder, PoolKey, SwapOrder, hashchain_links

__all__ = [
    "FIELD_MODULUS",
    "parse_field",
    "require_field",
    "to_field",
    "hash2",
    "poseidon2_hash",
    "AccountKeys",
    "derive_user_key",
    "BALANCE_SLOT",
    "NULLIFIER_SLOT",
    "decrypt",
    "encrypt",
    "NonceDiscoveryAggregate",
    "commitment_point",
    "leaf_hash",
    "reconstruct_leaf",
    "LeanIMT",
    "MerkleProof",
    "compute_root",
    "verify_proof",
    "LiquidityOrder",
    "PoolKey",
    "SwapOrder",
    "hashchain_links",
]
