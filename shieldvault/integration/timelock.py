"""
Round-gated encryption against a BN254 threshold beacon.

The beacon signs round `r` as `sigma = s * H(r)` on G1 with its public key
`pk = s * G2`. A sender who knows only `pk` encrypts for round `r`:

    V  = k * H(r)            (G1)
    C1 = k * G2              (G2)
    shared = e(pk, V)        = e(G2, H(r))^(s*k)

Once the round's signature is published anyone can recompute the same
shared secret as `e(C1, sigma)`. The shared secret is reduced to an AES-128
key (sha256 of the Fp12 coefficients -> field element -> Poseidon2 ->
sha256, first 16 bytes) and the payload is AES-128-CBC with PKCS7.

Envelope (canonical JSON, bytes):
    {"round": int,
     "timelock": {"V": {"x", "y"}, "C1": {"x0", "x1", "y0", "y1"}},
     "aes": {"iv": hex, "ciphertext": hex}}
"""

from __future__ import annotations

import hashlib
import json
import os
import secrets
from typing import Any, Dict, Tuple, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    FQ12,
    G2,
    b,
    b2,
    curve_order,
    field_modulus,
    is_on_curve,
    multiply,
    normalize,
    pairing,
)

from ..core.field import FIELD_MODULUS
from ..core.poseidon2 import poseidon2_hash
from ..errors import TimelockError
from ..state.canonical import canonical_json_bytes, hex_to_bytes


G1Point = Tuple[FQ, FQ, FQ]
G2Point = Tuple[FQ2, FQ2, FQ2]

HASH_TO_CURVE_ATTEMPTS = 256
AES_KEY_BYTES = 16
AES_BLOCK_BITS = 128


def _to_bytes(value: Union[bytes, bytearray, str], *, name: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return hex_to_bytes(value, name=name)


def hash_to_g1(message: bytes) -> G1Point:
    """Try-and-increment from sha256(message) onto y^2 = x^3 + 3."""
    p = field_modulus
    x = int.from_bytes(hashlib.sha256(message).digest(), "big") % p
    for _ in range(HASH_TO_CURVE_ATTEMPTS):
        y2 = (pow(x, 3, p) + 3) % p
        if pow(y2, (p - 1) // 2, p) == 1:
            y = pow(y2, (p + 1) // 4, p)
            if y * y % p == y2:
                return (FQ(x), FQ(y), FQ.one())
        x = (x + 1) % p
    raise TimelockError(f"hash to G1 failed after {HASH_TO_CURVE_ATTEMPTS} attempts")


def round_point(round_: int) -> G1Point:
    return hash_to_g1(str(int(round_)).encode("ascii"))


def parse_g1_signature(signature: Union[bytes, bytearray, str]) -> G1Point:
    """Uncompressed G1 point: x || y, 32 bytes each, big-endian."""
    raw = _to_bytes(signature, name="signature")
    if len(raw) != 64:
        raise TimelockError(f"signature must be 64 bytes, got {len(raw)}")
    x = int.from_bytes(raw[:32], "big")
    y = int.from_bytes(raw[32:], "big")
    if x >= field_modulus or y >= field_modulus:
        raise TimelockError("signature coordinate out of range")
    pt = (FQ(x), FQ(y), FQ.one())
    if not is_on_curve(pt, b):
        raise TimelockError("signature is not a G1 point")
    return pt


def encode_g1(pt: G1Point) -> bytes:
    x, y = normalize(pt)
    return int(x).to_bytes(32, "big") + int(y).to_bytes(32, "big")


def _fq2_coeffs(v: FQ2) -> Tuple[int, int]:
    return int(v.coeffs[0]) % field_modulus, int(v.coeffs[1]) % field_modulus


def parse_g2_public_key(public_key: Union[bytes, bytearray, str]) -> G2Point:
    """
    Uncompressed G2 point, 128 bytes.

    Publishers disagree on the order of the Fp2 coefficients, so every
    arrangement is tried and the first one on the twist wins.
    """
    raw = _to_bytes(public_key, name="public_key")
    if len(raw) != 128:
        raise TimelockError(f"public key must be 128 bytes, got {len(raw)}")
    w = [int.from_bytes(raw[i : i + 32], "big") for i in range(0, 128, 32)]
    if any(v >= field_modulus for v in w):
        raise TimelockError("public key coordinate out of range")
    candidates = (
        ((w[0], w[1]), (w[2], w[3])),
        ((w[1], w[0]), (w[3], w[2])),
        ((w[2], w[3]), (w[0], w[1])),
        ((w[3], w[2]), (w[1], w[0])),
    )
    for x, y in candidates:
        pt = (FQ2(list(x)), FQ2(list(y)), FQ2.one())
        if is_on_curve(pt, b2):
            return pt
    raise TimelockError("public key is not a G2 point in any coordinate order")


def encode_g2(pt: G2Point) -> bytes:
    x, y = normalize(pt)
    x0, x1 = _fq2_coeffs(x)
    y0, y1 = _fq2_coeffs(y)
    return b"".join(v.to_bytes(32, "big") for v in (x0, x1, y0, y1))


def derive_aes_key(shared: FQ12) -> bytes:
    coeffs = [str(int(c) % field_modulus) for c in shared.coeffs]
    digest = hashlib.sha256(canonical_json_bytes(coeffs)).digest()
    k = poseidon2_hash([int.from_bytes(digest, "big") % FIELD_MODULUS])
    return hashlib.sha256(k.to_bytes(32, "big")).digest()[:AES_KEY_BYTES]


def aes_encrypt(key: bytes, plaintext: bytes) -> Tuple[bytes, bytes]:
    iv = os.urandom(16)
    padder = padding.PKCS7(AES_BLOCK_BITS).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return iv, encryptor.update(padded) + encryptor.finalize()


def aes_decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    if len(iv) != 16 or not ciphertext or len(ciphertext) % 16:
        raise TimelockError("malformed AES-CBC ciphertext")
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(AES_BLOCK_BITS).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise TimelockError("signature does not open this ciphertext") from exc


class TimelockCipher:
    """Interface: payloads that open only once a beacon round is signed."""

    def encrypt(self, round_: int, plaintext: bytes) -> bytes:
        raise NotImplementedError

    def decrypt(self, ciphertext: bytes, signature: bytes) -> bytes:
        raise NotImplementedError

    def target_round(self, ciphertext: bytes) -> int:
        raise NotImplementedError


def _load_envelope(ciphertext: bytes) -> Dict[str, Any]:
    try:
        env = json.loads(bytes(ciphertext).decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise TimelockError(f"malformed timelock envelope: {exc}") from exc
    if not isinstance(env, dict) or not isinstance(env.get("round"), int):
        raise TimelockError("malformed timelock envelope (missing round)")
    return env


class Bn254Timelock(TimelockCipher):
    def __init__(self, public_key: Union[bytes, bytearray, str]) -> None:
        self._pk = parse_g2_public_key(public_key)

    def encrypt(self, round_: int, plaintext: bytes) -> bytes:
        if not isinstance(round_, int) or isinstance(round_, bool) or round_ <= 0:
            raise ValueError("round must be a positive int")
        k = secrets.randbelow(curve_order - 1) + 1
        v = multiply(round_point(round_), k)
        c1 = multiply(G2, k)
        key = derive_aes_key(pairing(self._pk, v))
        iv, body = aes_encrypt(key, bytes(plaintext))

        vx, vy = normalize(v)
        cx, cy = normalize(c1)
        x0, x1 = _fq2_coeffs(cx)
        y0, y1 = _fq2_coeffs(cy)
        return canonical_json_bytes(
            {
                "round": round_,
                "timelock": {
                    "V": {"x": str(int(vx)), "y": str(int(vy))},
                    "C1": {"x0": str(x0), "x1": str(x1), "y0": str(y0), "y1": str(y1)},
                },
                "aes": {"iv": iv.hex(), "ciphertext": body.hex()},
            }
        )

    def target_round(self, ciphertext: bytes) -> int:
        return int(_load_envelope(ciphertext)["round"])

    def decrypt(self, ciphertext: bytes, signature: Union[bytes, bytearray, str]) -> bytes:
        env = _load_envelope(ciphertext)
        try:
            c1_raw = env["timelock"]["C1"]
            c1 = (
                FQ2([int(c1_raw["x0"]), int(c1_raw["x1"])]),
                FQ2([int(c1_raw["y0"]), int(c1_raw["y1"])]),
                FQ2.one(),
            )
            iv = bytes.fromhex(env["aes"]["iv"])
            body = bytes.fromhex(env["aes"]["ciphertext"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TimelockError(f"malformed timelock envelope: {exc}") from exc
        if not is_on_curve(c1, b2):
            raise TimelockError("C1 is not a G2 point")
        sigma = parse_g1_signature(signature)
        key = derive_aes_key(pairing(c1, sigma))
        return aes_decrypt(key, iv, body)
