"""
Order-chain agents for deferred withdrawals.
"""

from .order_chain import (
    OrderChain,
    OrderStatus,
    build_chain,
    publish_head,
    walk_chain,
)

__all__ = [
    "OrderChain",
    "OrderStatus",
    "build_chain",
    "publish_head",
    "walk_chain",
]
