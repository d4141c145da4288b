"""
Account key derivation.

user_key       = H(sig[0:31], sig[31:62], sig[62:65])   (65-byte wallet signature)
spending_key   = H(user_key, chain_id, token)
viewing_key    = H(VIEW_TAG, user_key)
nonce_commit_n = H(spending_key, n, token)

The spending key never leaves the client; the viewing key is only used to
decrypt records locally. Token addresses enter the hash as integers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..state.canonical import address_to_int, canonical_address, hex_to_bytes
from .field import require_field, to_field
from .poseidon2 import poseidon2_hash


SIGNATURE_BYTES = 65

# b"viewing_key" as a big-endian integer
VIEW_TAG = 0x76696577696E675F6B6579

MAX_NONCE = (1 << 64) - 1


def _signature_bytes(signature: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(signature, str):
        raw = hex_to_bytes(signature, name="signature")
    elif isinstance(signature, (bytes, bytearray)):
        raw = bytes(signature)
    else:
        raise TypeError("signature must be bytes or a hex string")
    if len(raw) != SIGNATURE_BYTES:
        raise ValueError(f"signature must be {SIGNATURE_BYTES} bytes, got {len(raw)}")
    return raw


def derive_user_key(signature: Union[bytes, bytearray, str]) -> int:
    """Split the signature into 31/31/3-byte chunks so each fits the field."""
    sig = _signature_bytes(signature)
    chunks = (sig[0:31], sig[31:62], sig[62:65])
    return poseidon2_hash([int.from_bytes(c, "big") for c in chunks])


def token_to_field(token: Union[str, int]) -> int:
    if isinstance(token, str):
        return address_to_int(token, name="token")
    return to_field(token, name="token")


def spending_key(user_key: int, chain_id: int, token: Union[str, int]) -> int:
    return poseidon2_hash([require_field(user_key, name="user_key"), to_field(chain_id, name="chain_id"), token_to_field(token)])


def viewing_key(user_key: int) -> int:
    return poseidon2_hash([VIEW_TAG, require_field(user_key, name="user_key")])


def nonce_commitment(spending_key_value: int, nonce: int, token: Union[str, int]) -> int:
    if not isinstance(nonce, int) or isinstance(nonce, bool) or not 0 <= nonce <= MAX_NONCE:
        raise ValueError("nonce must be a u64")
    return poseidon2_hash([require_field(spending_key_value, name="spending_key"), nonce, token_to_field(token)])


@dataclass(frozen=True)
class AccountKeys:
    """Per-(user, chain, token) key bundle."""

    user_key: int
    chain_id: int
    token: str
    spending_key: int
    viewing_key: int

    @classmethod
    def derive(cls, user_key: int, chain_id: int, token: str) -> "AccountKeys":
        tok = canonical_address(token, name="token")
        return cls(
            user_key=require_field(user_key, name="user_key"),
            chain_id=int(chain_id),
            token=tok,
            spending_key=spending_key(user_key, chain_id, tok),
            viewing_key=viewing_key(user_key),
        )

    @classmethod
    def from_signature(cls, signature: Union[bytes, str], chain_id: int, token: str) -> "AccountKeys":
        return cls.derive(derive_user_key(signature), chain_id, token)

    @property
    def token_field(self) -> int:
        return token_to_field(self.token)

    def nonce_commitment(self, nonce: int) -> int:
        return nonce_commitment(self.spending_key, nonce, self.token)

    def __repr__(self) -> str:
        return f"AccountKeys(chain_id={self.chain_id}, token={self.token}, keys=<redacted>)"
