"""
Counter-mode stream cipher over the field.

keystream = H(key, slot); encryption adds it, decryption subtracts it, both
mod p. Values are field elements, so masking is additive rather than XOR.
Each record uses slot 0 for the balance and slot 1 for the nullifier, which
keeps the two keystreams distinct under one viewing key. There is no
authentication tag: integrity comes from the commitment tree.
"""

from __future__ import annotations

from .field import field_add, field_sub, require_field, to_field
from .poseidon2 import poseidon2_hash


BALANCE_SLOT = 0
NULLIFIER_SLOT = 1

_U32_MAX = 0xFFFFFFFF


def _require_slot(slot: int) -> int:
    if not isinstance(slot, int) or isinstance(slot, bool):
        raise TypeError("slot must be an int")
    if not 0 <= slot <= _U32_MAX:
        raise ValueError("slot must fit in u32")
    return slot


def keystream(key: int, slot: int) -> int:
    return poseidon2_hash([require_field(key, name="key"), _require_slot(slot)])


def encrypt(value: int, key: int, slot: int) -> int:
    return field_add(to_field(value, name="value"), keystream(key, slot))


def decrypt(encrypted_value: int, viewing_key: int, slot: int) -> int:
    return field_sub(require_field(encrypted_value, name="encrypted_value"), keystream(viewing_key, slot))
