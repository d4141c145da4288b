"""
Nonce-chain discovery.

Walks a (user, token) commitment chain forward from the cached checkpoint,
one nonce at a time, until the first nonce with no ledger record. Each
present record is decrypted with the viewing key and folded into the
running balance.

Policy:
- ledger unavailable or a query times out: return the cached checkpoint
  unchanged, flagged stale; nothing is written;
- a present record that cannot be decrypted: raise, never default to zero;
- the checkpoint store is written only after a complete walk;
- one walk per (account, token, mode) at a time.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import LedgerQueryConfig
from ..core.commitment import NonceDiscoveryAggregate
from ..core.ctr_cipher import BALANCE_SLOT, NULLIFIER_SLOT, decrypt
from ..core.keys import AccountKeys
from ..errors import DecryptionError, ReconstructionError, TransientLedgerError
from ..state.checkpoints import CheckpointKey, CheckpointStore
from ..state.records import BalanceEntry, Checkpoint, OperationType, combine_balance
from .ledger import Ledger, NonceCommitmentInfo, call_with_retry


logger = logging.getLogger(__name__)


def previous_nonce(current_nonce: int) -> int:
    return current_nonce - 1 if current_nonce > 0 else 0


@dataclass(frozen=True)
class DiscoveryResult:
    current_nonce: int
    entries: Tuple[BalanceEntry, ...]
    initialized: bool
    stale: bool = False
    warning: Optional[str] = None
    discovery_entry: Optional[Tuple[int, int]] = None

    @property
    def previous_nonce(self) -> int:
        return previous_nonce(self.current_nonce)

    @property
    def latest(self) -> Optional[BalanceEntry]:
        if not self.initialized:
            return None
        for e in self.entries:
            if e.nonce == self.previous_nonce:
                return e
        return None

    @property
    def balance(self) -> int:
        latest = self.latest
        return latest.shares if latest is not None else 0

    def checkpoint(self) -> Checkpoint:
        return Checkpoint(current_nonce=self.current_nonce, entries=self.entries)


def _from_cache(cached: Optional[Checkpoint], warning: str) -> DiscoveryResult:
    if cached is None:
        return DiscoveryResult(current_nonce=0, entries=(), initialized=False, stale=True, warning=warning)
    return DiscoveryResult(
        current_nonce=cached.current_nonce,
        entries=tuple(cached.entries),
        initialized=cached.current_nonce > 0,
        stale=True,
        warning=warning,
    )


@dataclass
class NonceDiscovery:
    ledger: Ledger
    store: CheckpointStore
    query: LedgerQueryConfig = field(default_factory=LedgerQueryConfig)
    max_share_bits: int = 128
    # Locks are bound to the loop that first contends them, so one registry
    # per running loop lets an instance outlive a single asyncio.run().
    _locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[CheckpointKey, asyncio.Lock]] = field(
        default_factory=weakref.WeakKeyDictionary
    )

    def _lock_for(self, key: CheckpointKey) -> asyncio.Lock:
        locks = self._locks.setdefault(asyncio.get_running_loop(), {})
        lock = locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            locks[key] = lock
        return lock

    async def _read(self, what: str, fn):
        return await call_with_retry(
            fn,
            timeout_s=self.query.timeout_s,
            max_attempts=self.query.max_attempts,
            backoff_s=self.query.backoff_s,
            what=what,
        )

    async def discover(self, keys: AccountKeys, key: CheckpointKey) -> DiscoveryResult:
        """Serialized per checkpoint key; different keys run concurrently."""
        async with self._lock_for(key):
            cached = self.store.get(key)
            try:
                result = await self._walk(keys, cached)
            except TransientLedgerError as exc:
                logger.warning("discovery for %s fell back to cached checkpoint: %s", key.as_str(), exc)
                return _from_cache(cached, f"ledger unavailable, using cached checkpoint: {exc}")
            self.store.put(key, result.checkpoint())
            logger.info(
                "discovery for %s complete: current_nonce=%d initialized=%s",
                key.as_str(),
                result.current_nonce,
                result.initialized,
            )
            return result

    async def discover_all(self, items: Sequence[Tuple[AccountKeys, CheckpointKey]]) -> List[DiscoveryResult]:
        return list(await asyncio.gather(*(self.discover(keys, key) for keys, key in items)))

    async def _walk(self, keys: AccountKeys, cached: Optional[Checkpoint]) -> DiscoveryResult:
        start = max(cached.current_nonce, 0) if cached is not None else 0
        entries: Dict[int, BalanceEntry] = {}
        if cached is not None and start > 0:
            if cached.covers(start - 1):
                entries = {e.nonce: e for e in cached.entries if e.nonce < start}
            else:
                logger.debug("cached entries do not cover nonce %d, rescanning from 0", start - 1)
                start = 0

        aggregate = NonceDiscoveryAggregate()
        for n in range(start):
            aggregate.absorb(keys.nonce_commitment(n))

        nonce = start
        running = entries[start - 1].shares if start > 0 else 0
        while True:
            nc = keys.nonce_commitment(nonce)
            info = await self._read(
                f"nonce commitment info (nonce {nonce})",
                lambda: self.ledger.get_nonce_commitment_info(nc),
            )
            if info is None:
                break
            entry = await self._entry_for(keys, nonce, nc, info, running)
            logger.debug("nonce %d present: op=%s", nonce, info.operation_type.name)
            entries[nonce] = entry
            running = entry.shares
            aggregate.absorb(nc)
            nonce += 1

        if cached is not None and nonce < cached.current_nonce:
            raise ReconstructionError(
                f"ledger chain ends before cached checkpoint {cached.current_nonce}",
                token=keys.token,
                nonce=nonce,
            )
        if nonce == 0:
            return DiscoveryResult(current_nonce=0, entries=(), initialized=False)
        return DiscoveryResult(
            current_nonce=nonce,
            entries=tuple(entries[n] for n in sorted(entries)),
            initialized=True,
            discovery_entry=aggregate.coordinates(),
        )

    async def _entry_for(
        self,
        keys: AccountKeys,
        nonce: int,
        nc: int,
        info: NonceCommitmentInfo,
        running: int,
    ) -> BalanceEntry:
        if nonce == 0:
            state = await self._read("commitment state (nonce 0)", lambda: self.ledger.get_commitment_state(nc))
            if state is None:
                raise ReconstructionError("nonce 0 record has no vault state", token=keys.token, nonce=0)
            return BalanceEntry(nonce=0, shares=state.public_balance, nullifier=0, unlocks_at=state.unlocks_at)

        try:
            op = OperationType(info.operation_type)
        except ValueError as exc:
            raise ReconstructionError(f"unknown operation type {info.operation_type!r}", token=keys.token, nonce=nonce) from exc

        decrypted = decrypt(info.encrypted_balance, keys.viewing_key, BALANCE_SLOT)
        if decrypted >> self.max_share_bits:
            raise DecryptionError(
                "decrypted balance is out of range; wrong viewing key or corrupt record",
                token=keys.token,
                nonce=nonce,
            )
        if op == OperationType.DEPOSIT and decrypted != running:
            logger.warning("nonce %d deposit encrypts %d but running balance is %d", nonce, decrypted, running)
        shares = combine_balance(op, decrypted, info.shares_minted)
        nullifier = decrypt(info.encrypted_nullifier, keys.viewing_key, NULLIFIER_SLOT)

        unlocks_at = 0
        if op == OperationType.WITHDRAW:
            state = await self._read(f"commitment state (nonce {nonce})", lambda: self.ledger.get_commitment_state(nc))
            unlocks_at = state.unlocks_at if state is not None else 0
        return BalanceEntry(nonce=nonce, shares=shares, nullifier=nullifier, unlocks_at=unlocks_at)
