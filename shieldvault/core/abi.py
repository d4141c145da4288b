"""
Minimal Solidity ABI encoding (`abi.encode`) for the types the vault uses.

Static values are 32-byte words. Dynamic values (`bytes`, `T[]`) are placed
in the tail and referenced by offset from the head.
"""

from __future__ import annotations

from typing import Sequence, Tuple, Union

from eth_utils import keccak

from ..state.canonical import canonical_address


WORD = 32


def _require_int(value: object, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    return int(value)


def encode_uint(value: int, bits: int = 256, *, name: str = "uint") -> bytes:
    v = _require_int(value, name)
    if not 0 <= v < (1 << bits):
        raise ValueError(f"{name} out of range for uint{bits}: {v}")
    return v.to_bytes(WORD, "big")


def encode_int(value: int, bits: int = 256, *, name: str = "int") -> bytes:
    v = _require_int(value, name)
    lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    if not lo <= v <= hi:
        raise ValueError(f"{name} out of range for int{bits}: {v}")
    return (v % (1 << 256)).to_bytes(WORD, "big")


def encode_address(address: str, *, name: str = "address") -> bytes:
    return bytes.fromhex(canonical_address(address, name=name)[2:]).rjust(WORD, b"\x00")


def encode_bytes32(value: Union[bytes, int], *, name: str = "bytes32") -> bytes:
    if isinstance(value, (bytes, bytearray)):
        if len(value) != WORD:
            raise ValueError(f"{name} must be 32 bytes")
        return bytes(value)
    return encode_uint(value, name=name)


def encode_dynamic_bytes(data: bytes) -> bytes:
    raw = bytes(data)
    padded_len = (len(raw) + WORD - 1) // WORD * WORD
    return encode_uint(len(raw)) + raw.ljust(padded_len, b"\x00")


def encode_bytes32_array(items: Sequence[bytes]) -> bytes:
    return encode_uint(len(items)) + b"".join(encode_bytes32(x) for x in items)


def abi_encode_static(words: Sequence[bytes]) -> bytes:
    for w in words:
        if len(w) != WORD:
            raise ValueError("static ABI words must be 32 bytes")
    return b"".join(words)


def abi_encode_mixed(parts: Sequence[Tuple[bool, bytes]]) -> bytes:
    """
    Encode a tuple given `(is_dynamic, encoding)` per member.

    Static members contribute their word to the head; dynamic members
    contribute an offset word to the head and their encoding to the tail.
    """
    head_len = WORD * len(parts)
    head = b""
    tail = b""
    for is_dynamic, enc in parts:
        if is_dynamic:
            head += encode_uint(head_len + len(tail))
            tail += enc
        else:
            if len(enc) != WORD:
                raise ValueError("static ABI members must be one word")
            head += enc
    return head + tail


def keccak256(data: bytes) -> bytes:
    return keccak(data)
