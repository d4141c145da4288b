"""
Human amounts, raw token units and vault shares.
"""

from __future__ import annotations

import re
from typing import List, Sequence

from ..core.abi import keccak256
from ..errors import ValidationError
from .ledger import Ledger


_AMOUNT_RE = re.compile(r"^\d+\.?\d*$")


def parse_amount(text: str, decimals: int) -> int:
    """
    Decimal string -> raw integer units, exactly.

    More fractional digits than the token supports is rejected rather than
    silently truncated.
    """
    if not isinstance(text, str):
        raise ValidationError("amount must be a string")
    s = text.strip()
    if not _AMOUNT_RE.fullmatch(s):
        raise ValidationError(f"bad amount format: {text!r}")
    if not isinstance(decimals, int) or isinstance(decimals, bool) or not 0 <= decimals <= 77:
        raise ValidationError("decimals must be an int in [0, 77]")
    whole, _, frac = s.partition(".")
    if len(frac) > decimals:
        raise ValidationError(f"amount has more than {decimals} decimal places: {text!r}")
    return int(whole) * 10**decimals + int(frac.ljust(decimals, "0") or "0")


def format_amount(raw: int, decimals: int) -> str:
    if raw < 0:
        raise ValueError("raw amount must be non-negative")
    if decimals == 0:
        return str(raw)
    whole, frac = divmod(raw, 10**decimals)
    frac_s = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{whole}.{frac_s}" if frac_s else str(whole)


async def to_shares(ledger: Ledger, token: str, raw_amount: int) -> int:
    """Vault conversion; tokens without a vault use raw units as shares."""
    shares = await ledger.convert_to_shares(token, raw_amount)
    return raw_amount if shares is None else int(shares)


async def to_assets(ledger: Ledger, token: str, shares: int) -> int:
    assets = await ledger.convert_to_assets(token, shares)
    return shares if assets is None else int(assets)


def split_shares(total: int, weights: Sequence[int]) -> List[int]:
    """
    Proportional integer split of `total`; the last part absorbs rounding so
    the parts always sum to `total` exactly.
    """
    if not weights:
        raise ValidationError("at least one weight is required")
    if any((not isinstance(w, int)) or isinstance(w, bool) or w <= 0 for w in weights):
        raise ValidationError("weights must be positive ints")
    if total < 0:
        raise ValidationError("total must be non-negative")
    weight_sum = sum(weights)
    parts = [total * w // weight_sum for w in weights[:-1]]
    parts.append(total - sum(parts))
    return parts


def calldata_hash(data: bytes) -> int:
    """keccak256 truncated to its first 31 bytes so it fits the field."""
    if not data:
        return 0
    return int.from_bytes(keccak256(bytes(data))[:31], "big")
