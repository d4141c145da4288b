"""
End-to-end proof pipeline for one (user, token).

discover -> load previous state -> Merkle proof -> (deferred withdrawals:
build the order chain) -> assemble inputs -> prove -> (publish the chain
head) -> submission payload.

Each step either returns its result or raises; nothing is retried here
beyond the per-query retries of the ledger reads. A caller timeout abandons
the whole run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence

from ..agents.order_chain import OrderChain, build_chain, publish_head
from ..config import ShieldVaultConfig
from ..core.keys import AccountKeys
from ..core.merkle import MerkleProof
from ..core.orders import Order
from ..errors import NonceUnknownError, ValidationError
from ..state.checkpoints import CheckpointKey
from ..state.records import PrivateStateSnapshot
from .amounts import parse_amount, to_shares
from .content_store import ContentStore
from .discovery import DiscoveryResult, NonceDiscovery
from .inputs import CircuitInputs, CircuitMode, DepositForm, WithdrawForm, assemble_inputs
from .ledger import Ledger, call_with_retry
from .merkle_prover import prove_membership
from .prover import ProofResult, ProvingBackend, generate_proof
from .reconstruct import load_previous_state
from .submission import SubmissionPayload, Submitter
from .timelock import TimelockCipher


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeferredPlan:
    orders: Sequence[Order]
    start_round: int
    round_step: int = 1000


@dataclass(frozen=True)
class PipelineResult:
    mode: CircuitMode
    discovery: DiscoveryResult
    inputs: CircuitInputs
    proof: ProofResult
    payload: SubmissionPayload
    previous: Optional[PrivateStateSnapshot] = None
    merkle_proof: Optional[MerkleProof] = None
    chain: Optional[OrderChain] = None
    head_cid: Optional[str] = None
    tx_id: Optional[str] = None


@dataclass
class ProofPipeline:
    ledger: Ledger
    discovery: NonceDiscovery
    backend: ProvingBackend
    config: ShieldVaultConfig = field(default_factory=ShieldVaultConfig)
    timelock: Optional[TimelockCipher] = None
    content_store: Optional[ContentStore] = None
    submitter: Optional[Submitter] = None

    async def run(
        self,
        mode: CircuitMode,
        keys: AccountKeys,
        account_id: str,
        form: Any = None,
        *,
        deferred: Optional[DeferredPlan] = None,
        timeout_s: Optional[float] = None,
    ) -> PipelineResult:
        coro = self._run(CircuitMode(mode), keys, account_id, form, deferred)
        if timeout_s is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout_s)
        except asyncio.TimeoutError:
            logger.warning("%s pipeline for %s abandoned after %.1fs", CircuitMode(mode).value, keys.token, timeout_s)
            raise

    async def _discover(self, keys: AccountKeys, account_id: str) -> DiscoveryResult:
        key = CheckpointKey(account_id=account_id, token=keys.token, mode=self.config.protocol.checkpoint_mode)
        return await self.discovery.discover(keys, key)

    async def _run(
        self,
        mode: CircuitMode,
        keys: AccountKeys,
        account_id: str,
        form: Any,
        deferred: Optional[DeferredPlan],
    ) -> PipelineResult:
        protocol = self.config.protocol
        query = self.config.ledger
        discovery = await self._discover(keys, account_id)

        if mode == CircuitMode.INIT:
            if discovery.stale:
                raise NonceUnknownError(f"cannot tell whether {keys.token} is initialized: {discovery.warning}")
            if discovery.initialized:
                raise ValidationError(f"{keys.token} is already initialized")
            inputs = await assemble_inputs(mode, self.ledger, keys)
            return await self._finish(mode, discovery, inputs)

        if deferred is not None and mode != CircuitMode.WITHDRAW:
            raise ValidationError("only withdrawals can be deferred")

        previous = await load_previous_state(self.ledger, keys, discovery, query=query)
        root = await call_with_retry(
            lambda: self.ledger.get_root(keys.token),
            timeout_s=query.timeout_s,
            max_attempts=query.max_attempts,
            backoff_s=query.backoff_s,
            what="root",
        )
        merkle = await prove_membership(self.ledger, keys.token, previous.leaf, root, query=query)

        chain: Optional[OrderChain] = None
        if deferred is not None:
            form, chain = await self._deferred_form(keys, form, previous, deferred)

        if mode == CircuitMode.DEPOSIT:
            if not isinstance(form, DepositForm):
                raise ValidationError("deposit requires a DepositForm")
            inputs = await assemble_inputs(mode, self.ledger, keys, form, previous, merkle, max_depth=protocol.max_tree_depth)
        else:
            if not isinstance(form, WithdrawForm):
                raise ValidationError("withdraw requires a WithdrawForm")
            inputs = await assemble_inputs(
                mode,
                self.ledger,
                keys,
                form,
                previous,
                merkle,
                max_depth=protocol.max_tree_depth,
                max_orders=protocol.max_deferred_orders,
            )
        call_data = form.call_data if isinstance(form, WithdrawForm) else b""
        return await self._finish(
            mode,
            discovery,
            inputs,
            call_data=call_data,
            previous=previous,
            merkle=merkle,
            chain=chain,
        )

    async def _deferred_form(
        self,
        keys: AccountKeys,
        form: Any,
        previous: PrivateStateSnapshot,
        plan: DeferredPlan,
    ):
        if not isinstance(form, WithdrawForm):
            raise ValidationError("withdraw requires a WithdrawForm")
        if self.timelock is None:
            raise ValidationError("deferred withdrawals need a timelock cipher")
        decimals = await self.ledger.token_decimals(keys.token)
        total = await to_shares(self.ledger, keys.token, parse_amount(form.amount, decimals))
        # Rejected before any pairing work.
        if total <= 0 or total > previous.shares:
            raise ValidationError(f"withdraw amount {total} must be in (0, {previous.shares}]")
        # Each order costs a pairing; keep the event loop free while they run.
        chain = await asyncio.to_thread(
            build_chain,
            plan.orders,
            start_round=plan.start_round,
            round_step=plan.round_step,
            user_key=keys.user_key,
            previous_nonce=previous.nonce,
            total_shares=total,
            timelock=self.timelock,
            max_orders=self.config.protocol.max_deferred_orders,
        )
        new_form = replace(
            form,
            call_data=chain.calldata(),
            deferred_shares=tuple(o.shares for o in plan.orders),
            tl_hashchain=chain.tl_hashchain,
        )
        return new_form, chain

    async def _finish(
        self,
        mode: CircuitMode,
        discovery: DiscoveryResult,
        inputs: CircuitInputs,
        *,
        call_data: bytes = b"",
        previous: Optional[PrivateStateSnapshot] = None,
        merkle: Optional[MerkleProof] = None,
        chain: Optional[OrderChain] = None,
    ) -> PipelineResult:
        proof = await asyncio.to_thread(generate_proof, self.backend, inputs)
        head_cid: Optional[str] = None
        if chain is not None and self.content_store is not None:
            # Published once proven, before the payload is submitted.
            head_cid = publish_head(chain, self.content_store)
        payload = SubmissionPayload.build(proof.proof, proof.public_signals, call_data)
        tx_id = self.submitter.send(payload) if self.submitter is not None else None
        return PipelineResult(
            mode=mode,
            discovery=discovery,
            inputs=inputs,
            proof=proof,
            payload=payload,
            previous=previous,
            merkle_proof=merkle,
            chain=chain,
            head_cid=head_cid,
            tx_id=tx_id,
        )
