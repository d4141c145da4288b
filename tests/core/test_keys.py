# [TESTER] v1

from __future__ import annotations

import pytest

from shieldvault.core.field import FIELD_MODULUS
from shieldvault.core.keys import (
    MAX_NONCE,
    AccountKeys,
    derive_user_key,
    nonce_commitment,
    spending_key,
    viewing_key,
)


SIGNATURE = bytes(range(65))
TOKEN = "0x" + "ab" * 20


def test_user_key_is_deterministic_and_accepts_hex() -> None:
    a = derive_user_key(SIGNATURE)
    assert a == derive_user_key("0x" + SIGNATURE.hex())
    assert 0 <= a < FIELD_MODULUS


def test_user_key_depends_on_every_chunk() -> None:
    base = derive_user_key(SIGNATURE)
    for pos in (0, 40, 64):
        altered = bytearray(SIGNATURE)
        altered[pos] ^= 0xFF
        assert derive_user_key(bytes(altered)) != base


def test_signature_length_is_enforced() -> None:
    with pytest.raises(ValueError):
        derive_user_key(SIGNATURE[:64])
    with pytest.raises(TypeError):
        derive_user_key(12345)  # type: ignore[arg-type]


def test_keys_are_domain_separated() -> None:
    uk = derive_user_key(SIGNATURE)
    assert spending_key(uk, 1, TOKEN) != spending_key(uk, 10, TOKEN)
    assert spending_key(uk, 1, TOKEN) != spending_key(uk, 1, "0x" + "cd" * 20)
    assert viewing_key(uk) != spending_key(uk, 1, TOKEN)


def test_account_keys_bundle() -> None:
    keys = AccountKeys.from_signature(SIGNATURE, 1, TOKEN.upper().replace("0X", "0x"))
    assert keys.token == TOKEN
    assert keys.spending_key == spending_key(keys.user_key, 1, TOKEN)
    assert keys.viewing_key == viewing_key(keys.user_key)
    assert keys.nonce_commitment(3) == nonce_commitment(keys.spending_key, 3, TOKEN)
    assert keys.nonce_commitment(3) != keys.nonce_commitment(4)


def test_repr_redacts_secrets() -> None:
    keys = AccountKeys.from_signature(SIGNATURE, 1, TOKEN)
    text = repr(keys)
    assert "redacted" in text
    assert str(keys.spending_key) not in text
    assert str(keys.user_key) not in text


def test_nonce_must_be_u64() -> None:
    keys = AccountKeys.from_signature(SIGNATURE, 1, TOKEN)
    keys.nonce_commitment(MAX_NONCE)
    with pytest.raises(ValueError):
        keys.nonce_commitment(MAX_NONCE + 1)
    with pytest.raises(ValueError):
        keys.nonce_commitment(-1)
