"""
BN254 scalar field helpers.

Every hash, cipher and commitment in this package works over this single
field and represents elements as plain `int` values in `[0, p)`.
"""

from __future__ import annotations

from py_ecc.bn128 import curve_order

from ..state.canonical import hex_to_bytes


FIELD_MODULUS: int = int(curve_order)

FIELD_BYTES = 32


def _require_int(value: object, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    return int(value)


def to_field(value: int, *, name: str = "value") -> int:
    """Reduce a non-negative int into the field."""
    v = _require_int(value, name)
    if v < 0:
        raise ValueError(f"{name} must be non-negative")
    return v % FIELD_MODULUS


def require_field(value: int, *, name: str = "value") -> int:
    """Accept only canonical field elements (no silent reduction)."""
    v = _require_int(value, name)
    if not 0 <= v < FIELD_MODULUS:
        raise ValueError(f"{name} is not a canonical field element")
    return v


def field_add(a: int, b: int) -> int:
    return (a + b) % FIELD_MODULUS


def field_sub(a: int, b: int) -> int:
    return (a - b) % FIELD_MODULUS


def field_to_hex(value: int) -> str:
    return "0x" + format(require_field(value), "064x")


def field_from_hex(hex_str: str, *, name: str = "value") -> int:
    raw = hex_to_bytes(hex_str, name=name)
    if len(raw) > FIELD_BYTES:
        raise ValueError(f"{name} is longer than {FIELD_BYTES} bytes")
    return require_field(int.from_bytes(raw, "big"), name=name)


def parse_field(value: object, *, name: str = "value") -> int:
    """Parse an int, decimal string or 0x-hex string into a canonical element."""
    if isinstance(value, int) and not isinstance(value, bool):
        return require_field(value, name=name)
    if isinstance(value, str):
        s = value.strip()
        if s.lower().startswith("0x"):
            return field_from_hex(s, name=name)
        if s.isascii() and s.isdigit():
            return require_field(int(s), name=name)
    raise ValueError(f"{name} must be an int, decimal string or 0x-hex string")
