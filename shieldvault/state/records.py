"""
Private-state records.

One nonce record exists on the ledger per state transition of a
(user, token) chain. Nonce 0 is created by Init and carries a public
balance; every later record carries the balance and nullifier encrypted
under the viewing key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, unique
from typing import Any, Dict, Mapping, Optional, Tuple


@unique
class OperationType(IntEnum):
    INIT = 0
    DEPOSIT = 1
    WITHDRAW = 2


def combine_balance(operation_type: OperationType, decrypted: int, shares_delta: int) -> int:
    """
    Init/Deposit records encrypt the balance before the operation, so the
    delta is added. Withdraw records encrypt the resulting balance.
    """
    if operation_type in (OperationType.INIT, OperationType.DEPOSIT):
        return decrypted + shares_delta
    if operation_type == OperationType.WITHDRAW:
        return decrypted
    raise ValueError(f"unknown operation type: {operation_type!r}")


@dataclass(frozen=True)
class NonceRecord:
    nonce: int
    token: str
    nonce_commitment: int
    operation_type: OperationType
    shares_delta: int
    encrypted_balance: int
    encrypted_nullifier: int
    is_anchored: bool = True


@dataclass(frozen=True)
class BalanceEntry:
    nonce: int
    shares: int
    nullifier: Optional[int] = None
    unlocks_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "nonce": str(self.nonce),
            "shares": str(self.shares),
            "unlocks_at": str(self.unlocks_at),
        }
        if self.nullifier is not None:
            out["nullifier"] = str(self.nullifier)
        return out

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> "BalanceEntry":
        nullifier = obj.get("nullifier")
        return cls(
            nonce=int(obj["nonce"]),
            shares=int(obj["shares"]),
            nullifier=int(nullifier) if nullifier is not None else None,
            unlocks_at=int(obj.get("unlocks_at", 0)),
        )


@dataclass(frozen=True)
class Checkpoint:
    """Last verified chain position plus the balances seen along the way."""

    current_nonce: int
    entries: Tuple[BalanceEntry, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.current_nonce, int) or isinstance(self.current_nonce, bool) or self.current_nonce < 0:
            raise ValueError("current_nonce must be a non-negative int")

    def entry(self, nonce: int) -> Optional[BalanceEntry]:
        for e in self.entries:
            if e.nonce == nonce:
                return e
        return None

    def covers(self, nonce: int) -> bool:
        """True if there is an entry for every nonce in [0, nonce]."""
        have = {e.nonce for e in self.entries}
        return all(n in have for n in range(nonce + 1))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_nonce": str(self.current_nonce),
            "entries": [e.to_dict() for e in sorted(self.entries, key=lambda e: e.nonce)],
        }

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> "Checkpoint":
        entries = obj.get("entries") or []
        if not isinstance(entries, list):
            raise TypeError("entries must be a list")
        return cls(
            current_nonce=int(obj["current_nonce"]),
            entries=tuple(BalanceEntry.from_dict(e) for e in entries),
        )


@dataclass(frozen=True)
class PrivateStateSnapshot:
    """State consumed by the next proof."""

    nonce: int
    token: str
    shares: int
    nullifier: int
    unlocks_at: int
    nonce_commitment: int
    leaf: int
