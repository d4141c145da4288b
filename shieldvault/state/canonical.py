"""
Deterministic canonical encoding primitives.

Used wherever bytes leave the process or feed a hash: checkpoint files,
prover stdin, order-chain plaintexts and timelock envelopes.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any


CANONICAL_ENCODING_VERSION = 1

_HEX_CHARS_RE = re.compile(r"^[0-9a-fA-F]+$")


def _reject_surrogates(s: str) -> None:
    for ch in s:
        if 0xD800 <= ord(ch) <= 0xDFFF:
            raise TypeError("surrogate code points are not allowed in canonical encoding")


def _reject_floats(value: Any) -> None:
    if isinstance(value, float):
        raise TypeError("floats are not allowed in canonical encoding")
    if isinstance(value, str):
        _reject_surrogates(value)
    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeError("dict keys must be str for canonical encoding")
            _reject_surrogates(k)
            _reject_floats(v)
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _reject_floats(item)


def canonical_json_bytes(value: Any) -> bytes:
    """
    Canonical JSON encoding for hashing and persistence.

    Rules:
    - UTF-8
    - sort_keys=True
    - separators=(',', ':') (no whitespace)
    - allow_nan=False
    - floats rejected (field elements travel as decimal strings)
    """
    _reject_floats(value)
    text = json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
    return text.encode("utf-8")


def bounded_json_utf8_size(value: Any, *, max_bytes: int, max_depth: int = 64) -> int:
    """
    Upper bound on `canonical_json_bytes(value)` size without building the string.

    Fails early on oversized payloads before they are handed to a subprocess.
    """
    if not isinstance(max_bytes, int) or isinstance(max_bytes, bool) or max_bytes <= 0:
        raise ValueError("max_bytes must be a positive int")
    if not isinstance(max_depth, int) or isinstance(max_depth, bool) or max_depth <= 0:
        raise ValueError("max_depth must be a positive int")

    def _size_str(s: str) -> int:
        # quotes + worst case \\uXXXX escaping of every char
        n = 2
        for ch in s:
            o = ord(ch)
            if 0xD800 <= o <= 0xDFFF:
                raise TypeError("surrogate code points are not allowed in canonical encoding")
            n += 6 if o < 0x20 else len(ch.encode("utf-8")) + (1 if ch in ('"', "\\") else 0)
        return n

    def _size(v: Any, depth: int) -> int:
        if depth <= 0:
            raise ValueError("json nesting exceeds max_depth")
        if isinstance(v, float):
            raise TypeError("floats are not allowed in canonical encoding")
        if v is None or v is True:
            return 4
        if v is False:
            return 5
        if isinstance(v, int):
            # digits(n) <= floor(bits * log10(2)) + 1
            return (abs(v).bit_length() * 30103) // 100000 + 1 + (1 if v < 0 else 0)
        if isinstance(v, str):
            return _size_str(v)
        if isinstance(v, (list, tuple)):
            total = 2 + max(len(v) - 1, 0)
            for item in v:
                total += _size(item, depth - 1)
                if total > max_bytes:
                    raise ValueError("json size exceeds max_bytes")
            return total
        if isinstance(v, dict):
            total = 2 + max(len(v) - 1, 0)
            for k, val in v.items():
                if not isinstance(k, str):
                    raise TypeError("dict keys must be str for bounded_json_utf8_size")
                total += _size_str(k) + 1 + _size(val, depth - 1)
                if total > max_bytes:
                    raise ValueError("json size exceeds max_bytes")
            return total
        raise TypeError(f"unsupported type for bounded_json_utf8_size: {type(v)}")

    size = _size(value, max_depth)
    if size > max_bytes:
        raise ValueError("json size exceeds max_bytes")
    return size


def sha256_hex(data: bytes) -> str:
    return "0x" + hashlib.sha256(data).hexdigest()


def strip_0x(hex_str: str) -> str:
    s = hex_str.strip()
    return s[2:] if s.lower().startswith("0x") else s


def hex_to_bytes(hex_str: str, *, name: str) -> bytes:
    """Decode variable-length hex (0x prefix optional)."""
    if not isinstance(hex_str, str):
        raise TypeError(f"{name} must be a str")
    body = strip_0x(hex_str)
    if len(body) % 2:
        raise ValueError(f"{name} must have an even number of hex digits")
    if body and not _HEX_CHARS_RE.fullmatch(body):
        raise ValueError(f"{name} must be valid hex")
    return bytes.fromhex(body)


def hex_to_bytes_fixed(hex_str: str, *, nbytes: int, name: str) -> bytes:
    if not isinstance(nbytes, int) or isinstance(nbytes, bool) or nbytes <= 0:
        raise ValueError("nbytes must be a positive int")
    out = hex_to_bytes(hex_str, name=name)
    if len(out) != nbytes:
        raise ValueError(f"{name} must decode to exactly {nbytes} bytes")
    return out


def canonical_hex_fixed_allow_0x(hex_str: str, *, nbytes: int, name: str) -> str:
    """
    Canonicalize a fixed-size hex string (lowercase, 0x-prefixed).

    Accepts either 0x-prefixed or raw hex input.
    """
    if not isinstance(hex_str, str):
        raise TypeError(f"{name} must be a str")
    if not isinstance(nbytes, int) or isinstance(nbytes, bool) or nbytes <= 0:
        raise ValueError("nbytes must be a positive int")
    s = strip_0x(hex_str)
    expected_len = 2 * nbytes
    if len(s) != expected_len:
        raise ValueError(f"{name} must be {nbytes} bytes (hex length {expected_len})")
    if not _HEX_CHARS_RE.fullmatch(s):
        raise ValueError(f"{name} must be valid hex")
    return "0x" + s.lower()


def canonical_address(address: str, *, name: str = "address") -> str:
    return canonical_hex_fixed_allow_0x(address, nbytes=20, name=name)


def address_to_int(address: str, *, name: str = "address") -> int:
    return int(canonical_address(address, name=name), 16)


def int_to_address(value: int) -> str:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value < 1 << 160:
        raise ValueError(f"address value out of range: {value!r}")
    return "0x" + format(value, "040x")


def int_to_bytes32_hex(value: int) -> str:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value < 1 << 256:
        raise ValueError(f"bytes32 value out of range: {value!r}")
    return "0x" + format(value, "064x")
