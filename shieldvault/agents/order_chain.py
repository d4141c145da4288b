"""
Timelocked order chains for deferred withdrawals.

A chain of N orders is encrypted tail-to-head: order i is encrypted to beacon
round `start_round + i * round_step` and its plaintext embeds the ciphertext
of order i+1. Publishing the head is enough; each round's beacon signature
opens one more order.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum, unique
from typing import AbstractSet, List, Optional, Protocol, Sequence, Tuple

from ..core.orders import (
    Order,
    hashchain_links,
    link_is_valid,
    order_from_dict,
    validate_share_sum,
)
from ..errors import OrderChainError, ValidationError
from ..integration.calldata import DeferredOperation, encode_deferred_calldata, operation_for
from ..integration.content_store import ContentStore
from ..integration.timelock import TimelockCipher
from ..state.canonical import canonical_json_bytes


logger = logging.getLogger(__name__)

MAX_ORDERS = 10


class SignatureSource(Protocol):
    def fetch_signature(self, round_: int) -> Optional[bytes]: ...


@dataclass(frozen=True)
class OrderChain:
    head_ciphertext: bytes
    order_hashes: Tuple[bytes, ...]
    tl_hashchain: int
    links: Tuple[int, ...]
    rounds: Tuple[int, ...]
    operation: DeferredOperation

    def calldata(self) -> bytes:
        return encode_deferred_calldata(self.head_ciphertext, self.order_hashes, self.operation)


@unique
class OrderStatus(str, Enum):
    LOCKED = "locked"
    DECRYPTABLE = "decryptable"
    CONSUMED = "consumed"


@dataclass(frozen=True)
class ChainStep:
    index: int
    round: int
    status: OrderStatus
    order: Optional[Order] = None
    prev_hash: Optional[int] = None
    next_hash: Optional[int] = None


def _require_positive(value: object, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{name} must be a positive int")
    return int(value)


def build_chain(
    orders: Sequence[Order],
    *,
    start_round: int,
    round_step: int,
    user_key: int,
    previous_nonce: int,
    total_shares: int,
    timelock: TimelockCipher,
    max_orders: int = MAX_ORDERS,
) -> OrderChain:
    """
    Encrypt `orders` into a nested chain.

    Args:
        orders: Orders in execution order; all swaps or all liquidity.
        start_round: Beacon round of the first order.
        round_step: Rounds between consecutive orders.
        user_key: Seeds the hashchain together with `previous_nonce`.
        previous_nonce: Nonce of the balance being withdrawn from.
        total_shares: Withdrawn shares; the orders must sum to it exactly.
        timelock: Cipher used for every layer.
        max_orders: Upper bound on the chain length.

    Returns:
        OrderChain with the head ciphertext, per-order hashes and the
        published tl_hashchain.
    """
    if not orders:
        raise ValidationError("at least one order is required")
    if len(orders) > max_orders:
        raise ValidationError(f"at most {max_orders} orders are supported")
    _require_positive(start_round, "start_round")
    _require_positive(round_step, "round_step")
    for i, order in enumerate(orders):
        try:
            order.validate()
        except ValidationError as exc:
            raise ValidationError(f"order {i + 1}: {exc}") from exc
    operation = operation_for(orders)
    validate_share_sum(orders, total_shares)

    links = hashchain_links(user_key, previous_nonce, [o.shares for o in orders])
    rounds = [start_round + i * round_step for i in range(len(orders))]

    # Built tail first; the tail order carries no nextCiphertext.
    next_ciphertext = b""
    for i in range(len(orders) - 1, -1, -1):
        payload = dict(orders[i].to_dict())
        payload["round"] = rounds[i]
        payload["prevHash"] = str(links[i])
        payload["nextHash"] = str(links[i + 1])
        if next_ciphertext:
            payload["nextCiphertext"] = next_ciphertext.decode("utf-8")
        next_ciphertext = timelock.encrypt(rounds[i], canonical_json_bytes(payload))
    order_hashes = tuple(o.order_hash(r) for o, r in zip(orders, rounds))
    logger.info(
        "built %s chain of %d orders, rounds %d..%d (%d byte head)",
        operation.name.lower(),
        len(orders),
        rounds[0],
        rounds[-1],
        len(next_ciphertext),
    )
    return OrderChain(
        head_ciphertext=next_ciphertext,
        order_hashes=order_hashes,
        tl_hashchain=links[-1],
        links=tuple(links),
        rounds=tuple(rounds),
        operation=operation,
    )


def walk_chain(
    head: bytes,
    timelock: TimelockCipher,
    beacon: SignatureSource,
    *,
    tl_hashchain: Optional[int] = None,
    consumed: AbstractSet[int] = frozenset(),
) -> List[ChainStep]:
    """
    Open the chain as far as the beacon allows.

    Every opened order must extend the hashchain from the previous one; the
    walk stops with a LOCKED step at the first round without a signature.
    """
    steps: List[ChainStep] = []
    ciphertext: Optional[bytes] = bytes(head)
    expected_prev: Optional[int] = None
    index = 0
    while ciphertext is not None:
        round_ = timelock.target_round(ciphertext)
        signature = beacon.fetch_signature(round_)
        if signature is None:
            steps.append(ChainStep(index=index, round=round_, status=OrderStatus.LOCKED))
            break
        try:
            payload = json.loads(timelock.decrypt(ciphertext, signature).decode("utf-8"))
            order = order_from_dict(payload)
            prev_hash = int(payload["prevHash"])
            next_hash = int(payload["nextHash"])
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise OrderChainError(f"order {index + 1}: malformed plaintext: {exc}") from exc
        if payload.get("round") != round_:
            raise OrderChainError(f"order {index + 1}: plaintext round does not match envelope round {round_}")
        if expected_prev is not None and prev_hash != expected_prev:
            raise OrderChainError(f"order {index + 1}: prevHash does not continue the chain")
        if not link_is_valid(prev_hash, order.shares, next_hash):
            raise OrderChainError(f"order {index + 1}: H(prevHash, shares) != nextHash")

        status = OrderStatus.CONSUMED if index in consumed else OrderStatus.DECRYPTABLE
        steps.append(
            ChainStep(
                index=index,
                round=round_,
                status=status,
                order=order,
                prev_hash=prev_hash,
                next_hash=next_hash,
            )
        )
        nested = payload.get("nextCiphertext")
        if nested is None and tl_hashchain is not None and next_hash != tl_hashchain:
            raise OrderChainError("last order does not reach the published tl_hashchain")
        ciphertext = nested.encode("utf-8") if isinstance(nested, str) else None
        expected_prev = next_hash
        index += 1
    return steps


def publish_head(chain: OrderChain, store: ContentStore) -> str:
    cid = store.put(chain.head_ciphertext)
    logger.info("published order chain head as %s", cid)
    return cid
