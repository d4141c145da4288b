"""
Deferred orders released by a timelock chain.

Two kinds exist: swaps and liquidity provisions. Each order carries the
number of vault shares it consumes; the shares of all orders in one chain
must add up exactly to the withdrawn total.

Integrity material published on-chain:
- order_hash: keccak256 of the ABI encoding of the order and its round;
- tl_hashchain: h0 = H(H(user_key, previous_nonce), total),
  h_{i+1} = H(h_i, shares_i), tl_hashchain = h_n.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from ..errors import ValidationError
from ..state.canonical import canonical_address
from .abi import abi_encode_static, encode_address, encode_bytes32, encode_int, encode_uint, keccak256
from .poseidon2 import poseidon2_hash


MAX_BPS = 10_000

ZERO_ADDRESS = "0x" + "00" * 20


def _require_positive(value: object, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an int")
    if value <= 0:
        raise ValidationError(f"{name} must be positive")
    return int(value)


def _require_bps(value: object, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= MAX_BPS:
        raise ValidationError(f"{name} must be an int in [0, {MAX_BPS}]")
    return int(value)


def _require_address(value: object, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{name} is required")
    try:
        return canonical_address(value, name=name)
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc)) from exc


@dataclass(frozen=True)
class SwapOrder:
    shares: int
    amount_out_min: int
    slippage_bps: int
    deadline: int
    execution_fee_bps: int
    recipient: str
    token_out: str

    kind = "swap"

    def validate(self) -> "SwapOrder":
        _require_positive(self.shares, "shares")
        _require_positive(self.amount_out_min, "amount_out_min")
        _require_positive(self.deadline, "deadline")
        _require_bps(self.slippage_bps, "slippage_bps")
        _require_bps(self.execution_fee_bps, "execution_fee_bps")
        _require_address(self.recipient, "recipient")
        _require_address(self.token_out, "token_out")
        return self

    def order_hash(self, round_: int) -> bytes:
        return keccak256(
            abi_encode_static(
                [
                    encode_uint(self.shares, name="shares"),
                    encode_uint(self.amount_out_min, name="amount_out_min"),
                    encode_uint(self.slippage_bps, 16, name="slippage_bps"),
                    encode_uint(self.deadline, name="deadline"),
                    encode_uint(self.execution_fee_bps, name="execution_fee_bps"),
                    encode_address(self.recipient, name="recipient"),
                    encode_address(self.token_out, name="token_out"),
                    encode_uint(round_, name="round"),
                ]
            )
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "sharesAmount": str(self.shares),
            "amountOutMin": str(self.amount_out_min),
            "slippageBps": self.slippage_bps,
            "deadline": self.deadline,
            "executionFeeBps": self.execution_fee_bps,
            "recipient": canonical_address(self.recipient, name="recipient"),
            "tokenOut": canonical_address(self.token_out, name="token_out"),
        }

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> "SwapOrder":
        return cls(
            shares=int(obj["sharesAmount"]),
            amount_out_min=int(obj["amountOutMin"]),
            slippage_bps=int(obj["slippageBps"]),
            deadline=int(obj["deadline"]),
            execution_fee_bps=int(obj["executionFeeBps"]),
            recipient=str(obj["recipient"]),
            token_out=str(obj["tokenOut"]),
        )


@dataclass(frozen=True)
class PoolKey:
    currency0: str
    currency1: str
    fee: int
    tick_spacing: int
    hooks: str = ZERO_ADDRESS

    def pool_key_hash(self) -> bytes:
        return keccak256(
            abi_encode_static(
                [
                    encode_address(self.currency0, name="currency0"),
                    encode_address(self.currency1, name="currency1"),
                    encode_uint(self.fee, 24, name="fee"),
                    encode_int(self.tick_spacing, 24, name="tick_spacing"),
                    encode_address(self.hooks, name="hooks"),
                ]
            )
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currency0": canonical_address(self.currency0, name="currency0"),
            "currency1": canonical_address(self.currency1, name="currency1"),
            "fee": self.fee,
            "tickSpacing": self.tick_spacing,
            "hooks": canonical_address(self.hooks, name="hooks"),
        }


@dataclass(frozen=True)
class LiquidityOrder:
    shares: int
    pool_key: PoolKey
    tick_lower: int
    tick_upper: int
    amount0_max: int
    amount1_max: int
    deadline: int
    execution_fee_bps: int
    recipient: str

    kind = "liquidity"

    def validate(self) -> "LiquidityOrder":
        _require_positive(self.shares, "shares")
        _require_positive(self.deadline, "deadline")
        _require_bps(self.execution_fee_bps, "execution_fee_bps")
        _require_address(self.recipient, "recipient")
        _require_address(self.pool_key.currency0, "currency0")
        _require_address(self.pool_key.currency1, "currency1")
        if self.tick_lower >= self.tick_upper:
            raise ValidationError("tick_lower must be below tick_upper")
        if self.amount0_max < 0 or self.amount1_max < 0:
            raise ValidationError("amount maxima must be non-negative")
        return self

    def order_hash(self, round_: int) -> bytes:
        return keccak256(
            abi_encode_static(
                [
                    encode_uint(self.shares, name="shares"),
                    encode_bytes32(self.pool_key.pool_key_hash(), name="pool_key_hash"),
                    encode_int(self.tick_lower, 24, name="tick_lower"),
                    encode_int(self.tick_upper, 24, name="tick_upper"),
                    encode_uint(self.amount0_max, name="amount0_max"),
                    encode_uint(self.amount1_max, name="amount1_max"),
                    encode_uint(self.deadline, name="deadline"),
                    encode_uint(self.execution_fee_bps, name="execution_fee_bps"),
                    encode_address(self.recipient, name="recipient"),
                    encode_uint(round_, name="round"),
                ]
            )
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "sharesAmount": str(self.shares),
            "poolKey": self.pool_key.to_dict(),
            "tickLower": self.tick_lower,
            "tickUpper": self.tick_upper,
            "amount0Max": str(self.amount0_max),
            "amount1Max": str(self.amount1_max),
            "deadline": self.deadline,
            "executionFeeBps": self.execution_fee_bps,
            "recipient": canonical_address(self.recipient, name="recipient"),
        }

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> "LiquidityOrder":
        pk = obj["poolKey"]
        return cls(
            shares=int(obj["sharesAmount"]),
            pool_key=PoolKey(
                currency0=str(pk["currency0"]),
                currency1=str(pk["currency1"]),
                fee=int(pk["fee"]),
                tick_spacing=int(pk["tickSpacing"]),
                hooks=str(pk["hooks"]),
            ),
            tick_lower=int(obj["tickLower"]),
            tick_upper=int(obj["tickUpper"]),
            amount0_max=int(obj["amount0Max"]),
            amount1_max=int(obj["amount1Max"]),
            deadline=int(obj["deadline"]),
            execution_fee_bps=int(obj["executionFeeBps"]),
            recipient=str(obj["recipient"]),
        )


Order = Union[SwapOrder, LiquidityOrder]


def order_from_dict(obj: Mapping[str, Any]) -> Order:
    kind = obj.get("kind")
    if kind == SwapOrder.kind:
        return SwapOrder.from_dict(obj)
    if kind == LiquidityOrder.kind:
        return LiquidityOrder.from_dict(obj)
    raise ValidationError(f"unknown order kind: {kind!r}")


def validate_share_sum(orders: Sequence[Order], total_shares: int) -> None:
    got = sum(o.shares for o in orders)
    if got != total_shares:
        raise ValidationError(f"order shares sum to {got}, expected exactly {total_shares}")


def initial_hashchain(user_key: int, previous_nonce: int) -> int:
    return poseidon2_hash([user_key, previous_nonce])


def hashchain_links(user_key: int, previous_nonce: int, shares: Sequence[int]) -> List[int]:
    """Returns [h0, h1, ..., hn]; hn is the published tl_hashchain."""
    current = poseidon2_hash([initial_hashchain(user_key, previous_nonce), sum(shares)])
    links = [current]
    for s in shares:
        current = poseidon2_hash([current, s])
        links.append(current)
    return links


def link_is_valid(prev_hash: int, shares: int, next_hash: int) -> bool:
    return poseidon2_hash([prev_hash, shares]) == next_hash


def tl_swap_share_slots(orders: Sequence[Order], slots: int) -> Tuple[int, ...]:
    if len(orders) > slots:
        raise ValidationError(f"at most {slots} deferred orders are supported")
    return tuple(o.shares for o in orders) + (0,) * (slots - len(orders))
