"""
Call data attached to a withdrawal.

A deferred withdrawal carries `abi.encode(bytes ciphertext, bytes32[]
orderHashes, uint8 operationType)`: the head ciphertext of the order chain,
the per-order hashes the executor checks against, and whether the chain
holds swaps or liquidity orders.
"""

from __future__ import annotations

from enum import IntEnum, unique
from typing import Sequence

from ..core.abi import (
    WORD,
    abi_encode_mixed,
    encode_bytes32_array,
    encode_dynamic_bytes,
    encode_uint,
)
from ..core.orders import LiquidityOrder, Order, SwapOrder
from ..errors import ValidationError


@unique
class DeferredOperation(IntEnum):
    SWAP = 0
    LIQUIDITY = 1


def operation_for(orders: Sequence[Order]) -> DeferredOperation:
    """One chain holds one kind of order."""
    if not orders:
        raise ValidationError("at least one order is required")
    if all(isinstance(o, SwapOrder) for o in orders):
        return DeferredOperation.SWAP
    if all(isinstance(o, LiquidityOrder) for o in orders):
        return DeferredOperation.LIQUIDITY
    raise ValidationError("swap and liquidity orders cannot share a chain")


def encode_deferred_calldata(
    ciphertext: bytes,
    order_hashes: Sequence[bytes],
    operation_type: DeferredOperation,
) -> bytes:
    if not ciphertext:
        raise ValidationError("head ciphertext is empty")
    if not order_hashes:
        raise ValidationError("at least one order hash is required")
    for h in order_hashes:
        if len(h) != WORD:
            raise ValidationError("order hashes must be 32 bytes")
    op = DeferredOperation(operation_type)
    return abi_encode_mixed(
        [
            (True, encode_dynamic_bytes(ciphertext)),
            (True, encode_bytes32_array(list(order_hashes))),
            (False, encode_uint(int(op), 8, name="operation_type")),
        ]
    )
