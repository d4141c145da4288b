"""
In-process ledger.

Plays the vault contract for tests, simulations and the CLI demo: it keeps
one Lean-IMT per token, the nonce-commitment registry and a fixed
share/asset rate. The `record_*` helpers perform what a verified proof plus
the contract would do for each operation type.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from ..core.commitment import reconstruct_leaf
from ..core.ctr_cipher import BALANCE_SLOT, NULLIFIER_SLOT, encrypt
from ..core.keys import AccountKeys
from ..core.merkle import LeanIMT
from ..errors import TransientLedgerError
from ..state.canonical import canonical_address
from ..state.records import NonceRecord, OperationType
from .ledger import CommitmentState, Ledger, LedgerMerkleProof, NonceCommitmentInfo


@dataclass(frozen=True)
class VaultInfo:
    decimals: int = 18
    # shares = assets * rate_num // rate_den
    rate_num: int = 1
    rate_den: int = 1
    has_vault: bool = True


class InMemoryLedger(Ledger):
    def __init__(self, *, serve_proofs: bool = True) -> None:
        self.serve_proofs = serve_proofs
        self.unavailable = False
        self.latency_s = 0.0
        self.calls: Counter = Counter()
        self._vaults: Dict[str, VaultInfo] = {}
        self._trees: Dict[str, LeanIMT] = {}
        self._info: Dict[int, NonceCommitmentInfo] = {}
        self._states: Dict[int, CommitmentState] = {}

    # -- setup -------------------------------------------------------------

    def register_token(self, token: str, vault: VaultInfo = VaultInfo()) -> None:
        self._vaults[canonical_address(token, name="token")] = vault

    def tree(self, token: str) -> LeanIMT:
        tok = canonical_address(token, name="token")
        if tok not in self._trees:
            self._trees[tok] = LeanIMT()
        return self._trees[tok]

    def append_foreign_leaf(self, token: str, leaf: int) -> int:
        """Leaf owned by some other account."""
        return self.tree(token).insert(leaf)

    def _register(
        self,
        keys: AccountKeys,
        nonce: int,
        operation_type: OperationType,
        *,
        shares: int,
        shares_delta: int,
        encrypted_balance: int,
        encrypted_nullifier: int,
        nullifier: int,
        unlocks_at: int,
        public_balance: int = 0,
    ) -> NonceRecord:
        nc = keys.nonce_commitment(nonce)
        if nc in self._info:
            raise ValueError(f"nonce {nonce} already recorded")
        leaf = reconstruct_leaf(shares, nullifier, keys.spending_key, unlocks_at, nc)
        self.tree(keys.token).insert(leaf)
        self._info[nc] = NonceCommitmentInfo(
            operation_type=operation_type,
            shares_minted=shares_delta,
            encrypted_balance=encrypted_balance,
            encrypted_nullifier=encrypted_nullifier,
        )
        self._states[nc] = CommitmentState(public_balance=public_balance, unlocks_at=unlocks_at)
        return NonceRecord(
            nonce=nonce,
            token=keys.token,
            nonce_commitment=nc,
            operation_type=operation_type,
            shares_delta=shares_delta,
            encrypted_balance=encrypted_balance,
            encrypted_nullifier=encrypted_nullifier,
        )

    def record_init(self, keys: AccountKeys, shares: int) -> NonceRecord:
        return self._register(
            keys,
            0,
            OperationType.INIT,
            shares=shares,
            shares_delta=shares,
            encrypted_balance=0,
            encrypted_nullifier=0,
            nullifier=0,
            unlocks_at=0,
            public_balance=shares,
        )

    def record_deposit(
        self, keys: AccountKeys, nonce: int, *, previous_shares: int, shares_minted: int, nullifier: int
    ) -> NonceRecord:
        return self._register(
            keys,
            nonce,
            OperationType.DEPOSIT,
            shares=previous_shares + shares_minted,
            shares_delta=shares_minted,
            encrypted_balance=encrypt(previous_shares, keys.viewing_key, BALANCE_SLOT),
            encrypted_nullifier=encrypt(nullifier, keys.viewing_key, NULLIFIER_SLOT),
            nullifier=nullifier,
            unlocks_at=0,
        )

    def record_withdraw(
        self, keys: AccountKeys, nonce: int, *, remaining_shares: int, nullifier: int, unlocks_at: int = 0
    ) -> NonceRecord:
        return self._register(
            keys,
            nonce,
            OperationType.WITHDRAW,
            shares=remaining_shares,
            shares_delta=0,
            encrypted_balance=encrypt(remaining_shares, keys.viewing_key, BALANCE_SLOT),
            encrypted_nullifier=encrypt(nullifier, keys.viewing_key, NULLIFIER_SLOT),
            nullifier=nullifier,
            unlocks_at=unlocks_at,
        )

    def record_raw(self, nonce_commitment: int, info: NonceCommitmentInfo, state: Optional[CommitmentState] = None) -> None:
        """Store a record verbatim (no leaf), for corrupted-ledger scenarios."""
        self._info[nonce_commitment] = info
        self._states[nonce_commitment] = state or CommitmentState(public_balance=0)

    # -- reads -------------------------------------------------------------

    async def _enter(self, name: str) -> None:
        self.calls[name] += 1
        if self.latency_s:
            await asyncio.sleep(self.latency_s)
        if self.unavailable:
            raise TransientLedgerError(f"ledger unavailable ({name})")

    async def get_root(self, token: str) -> int:
        await self._enter("get_root")
        return self.tree(token).root

    async def get_depth(self, token: str) -> int:
        await self._enter("get_depth")
        return self.tree(token).depth

    async def has_leaf(self, token: str, leaf: int) -> bool:
        await self._enter("has_leaf")
        return self.tree(token).has_leaf(leaf)

    async def get_leaf_index(self, token: str, leaf: int) -> Optional[int]:
        await self._enter("get_leaf_index")
        return self.tree(token).index_of(leaf)

    async def get_leaves(self, token: str) -> Sequence[int]:
        await self._enter("get_leaves")
        return self.tree(token).leaves()

    async def get_merkle_proof(self, token: str, index: int) -> Optional[LedgerMerkleProof]:
        await self._enter("get_merkle_proof")
        if not self.serve_proofs:
            return None
        proof = self.tree(token).generate_proof(index)
        return LedgerMerkleProof(index=proof.index, siblings=proof.siblings)

    async def get_nonce_commitment_info(self, nonce_commitment: int) -> Optional[NonceCommitmentInfo]:
        await self._enter("get_nonce_commitment_info")
        return self._info.get(nonce_commitment)

    async def get_commitment_state(self, nonce_commitment: int) -> Optional[CommitmentState]:
        await self._enter("get_commitment_state")
        return self._states.get(nonce_commitment)

    def _vault(self, token: str) -> VaultInfo:
        return self._vaults.get(canonical_address(token, name="token"), VaultInfo(has_vault=False))

    async def convert_to_shares(self, token: str, assets: int) -> Optional[int]:
        await self._enter("convert_to_shares")
        v = self._vault(token)
        return assets * v.rate_num // v.rate_den if v.has_vault else None

    async def convert_to_assets(self, token: str, shares: int) -> Optional[int]:
        await self._enter("convert_to_assets")
        v = self._vault(token)
        return shares * v.rate_den // v.rate_num if v.has_vault else None

    async def token_decimals(self, token: str) -> int:
        await self._enter("token_decimals")
        return self._vault(token).decimals
