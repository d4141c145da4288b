"""
Circuit input assembly.

Turns form values, the reconstructed previous state and its Merkle proof
into the witness inputs of the init/deposit/withdraw circuits, and pins the
public-signal layout each circuit must produce.

Each mode has exactly one accepted public-signal arity. Prover output with
any other arity, or with a known slot that disagrees with what was
assembled, is a reconstruction error; it is never reordered or patched.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..core.field import parse_field
from ..core.keys import AccountKeys
from ..core.merkle import MAX_DEPTH, MerkleProof
from ..errors import PublicSignalLayoutError, ValidationError
from ..state.canonical import address_to_int
from ..state.records import PrivateStateSnapshot
from .amounts import calldata_hash, parse_amount, to_shares
from .ledger import Ledger


MAX_DEFERRED_ORDERS = 10


@unique
class CircuitMode(str, Enum):
    INIT = "init"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


INIT_PUBLIC_LAYOUT: Tuple[str, ...] = (
    "token",
    "chain_id",
    "new_commitment_x",
    "new_commitment_y",
    "new_nonce_commitment",
    "discovery_entry_x",
    "discovery_entry_y",
)

DEPOSIT_PUBLIC_LAYOUT: Tuple[str, ...] = (
    "token",
    "chain_id",
    "declared_time",
    "expected_root",
    "new_commitment_x",
    "new_commitment_y",
    "new_nonce_commitment",
    "encrypted_balance",
    "encrypted_nullifier",
    "discovery_entry_x",
    "discovery_entry_y",
)

WITHDRAW_PUBLIC_LAYOUT: Tuple[str, ...] = (
    "token",
    "chain_id",
    "declared_time",
    "expected_root",
    "calldata_hash",
    "receiver",
    "relayer_fee",
    "is_deferred",
    "new_commitment_x",
    "new_commitment_y",
    "new_nonce_commitment",
    "encrypted_balance",
    "encrypted_nullifier",
    "discovery_entry_x",
    "discovery_entry_y",
    "tl_hashchain",
    "final_amount",
)

PUBLIC_LAYOUTS: Dict[CircuitMode, Tuple[str, ...]] = {
    CircuitMode.INIT: INIT_PUBLIC_LAYOUT,
    CircuitMode.DEPOSIT: DEPOSIT_PUBLIC_LAYOUT,
    CircuitMode.WITHDRAW: WITHDRAW_PUBLIC_LAYOUT,
}


@dataclass(frozen=True)
class DepositForm:
    amount: str
    declared_time: int


@dataclass(frozen=True)
class WithdrawForm:
    amount: str
    receiver: str
    declared_time: int
    relayer_fee: str = "0"
    call_data: bytes = b""
    # Exact per-order share amounts; empty for an immediate withdrawal.
    deferred_shares: Tuple[int, ...] = ()
    # Published hashchain of the deferred order chain, when one was built.
    tl_hashchain: Optional[int] = None

    @property
    def is_deferred(self) -> bool:
        return bool(self.deferred_shares)


@dataclass(frozen=True)
class CircuitInputs:
    mode: CircuitMode
    private: Tuple[Tuple[str, Any], ...]
    public_template: Tuple[Optional[int], ...]

    def private_inputs(self) -> Dict[str, Any]:
        """Witness inputs as decimal strings (lists for array inputs), in circuit order."""
        out: Dict[str, Any] = {}
        for name, value in self.private:
            if isinstance(value, (list, tuple)):
                out[name] = [str(int(v)) for v in value]
            else:
                out[name] = str(int(value))
        return out

    def layout(self) -> Tuple[str, ...]:
        return PUBLIC_LAYOUTS[self.mode]

    def public_value(self, name: str) -> Optional[int]:
        return self.public_template[self.layout().index(name)]


def _require_time(value: object) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError("declared_time must be a positive int")
    return int(value)


def _template(mode: CircuitMode, known: Mapping[str, Optional[int]]) -> Tuple[Optional[int], ...]:
    layout = PUBLIC_LAYOUTS[mode]
    unknown = set(known) - set(layout)
    if unknown:
        raise ValueError(f"not in the {mode.value} layout: {sorted(unknown)}")
    return tuple(known.get(name) for name in layout)


def _proof_fields(proof: MerkleProof, expected_root: int, max_depth: int) -> Tuple[Tuple[str, Any], ...]:
    return (
        ("previous_commitment_leaf", proof.leaf),
        ("commitment_index", proof.index),
        ("tree_depth", proof.depth),
        ("expected_root", expected_root),
        ("merkle_proof", proof.padded_siblings(max_depth)),
    )


def assemble_init(keys: AccountKeys) -> CircuitInputs:
    token = keys.token_field
    return CircuitInputs(
        mode=CircuitMode.INIT,
        private=(
            ("user_key", keys.user_key),
            ("token_address", token),
            ("chain_id", keys.chain_id),
        ),
        public_template=_template(CircuitMode.INIT, {"token": token, "chain_id": keys.chain_id}),
    )


async def assemble_deposit(
    ledger: Ledger,
    keys: AccountKeys,
    form: DepositForm,
    previous: PrivateStateSnapshot,
    proof: MerkleProof,
    *,
    max_depth: int = MAX_DEPTH,
) -> CircuitInputs:
    declared_time = _require_time(form.declared_time)
    decimals = await ledger.token_decimals(keys.token)
    raw = parse_amount(form.amount, decimals)
    if raw <= 0:
        raise ValidationError("deposit amount must be positive")
    amount = await to_shares(ledger, keys.token, raw)

    token = keys.token_field
    private = (
        ("user_key", keys.user_key),
        ("token_address", token),
        ("amount", amount),
        ("chain_id", keys.chain_id),
        ("previous_nonce", previous.nonce),
        ("previous_shares", previous.shares),
        ("nullifier", previous.nullifier),
        ("previous_unlocks_at", previous.unlocks_at),
        ("declared_time_reference", declared_time),
    ) + _proof_fields(proof, proof.root, max_depth)
    known = {
        "token": token,
        "chain_id": keys.chain_id,
        "declared_time": declared_time,
        "expected_root": proof.root,
    }
    return CircuitInputs(mode=CircuitMode.DEPOSIT, private=private, public_template=_template(CircuitMode.DEPOSIT, known))


async def assemble_withdraw(
    ledger: Ledger,
    keys: AccountKeys,
    form: WithdrawForm,
    previous: PrivateStateSnapshot,
    proof: MerkleProof,
    *,
    max_depth: int = MAX_DEPTH,
    max_orders: int = MAX_DEFERRED_ORDERS,
) -> CircuitInputs:
    # Input validation first; no hashing before this block passes.
    declared_time = _require_time(form.declared_time)
    try:
        receiver = address_to_int(form.receiver, name="receiver")
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc)) from exc
    if len(form.deferred_shares) > max_orders:
        raise ValidationError(f"at most {max_orders} deferred orders are supported")
    for i, s in enumerate(form.deferred_shares):
        if not isinstance(s, int) or isinstance(s, bool) or s <= 0:
            raise ValidationError(f"order {i + 1}: shares must be a positive int")
    if form.is_deferred and form.tl_hashchain is None:
        raise ValidationError("deferred withdrawal requires the order chain's tl_hashchain")
    if previous.unlocks_at > declared_time:
        raise ValidationError(f"balance is locked until {previous.unlocks_at}")

    decimals = await ledger.token_decimals(keys.token)
    amount = await to_shares(ledger, keys.token, parse_amount(form.amount, decimals))
    fee = await to_shares(ledger, keys.token, parse_amount(form.relayer_fee, decimals))
    if amount <= 0:
        raise ValidationError("withdraw amount must be positive")
    if amount > previous.shares:
        raise ValidationError(f"withdraw amount {amount} exceeds balance {previous.shares}")
    if fee > amount:
        raise ValidationError("relayer fee exceeds withdraw amount")
    if form.is_deferred and sum(form.deferred_shares) != amount:
        raise ValidationError(f"order shares sum to {sum(form.deferred_shares)}, expected exactly {amount}")

    token = keys.token_field
    cd_hash = calldata_hash(form.call_data)
    is_deferred = 1 if form.is_deferred else 0
    slots = tuple(form.deferred_shares) + (0,) * (max_orders - len(form.deferred_shares))

    private = (
        ("user_key", keys.user_key),
        ("token_address", token),
        ("amount", amount),
        ("chain_id", keys.chain_id),
        ("previous_nonce", previous.nonce),
        ("previous_shares", previous.shares),
        ("nullifier", previous.nullifier),
        ("previous_unlocks_at", previous.unlocks_at),
        ("declared_time_reference", declared_time),
    ) + _proof_fields(proof, proof.root, max_depth) + (
        ("receiver_address", receiver),
        ("relayer_fee_amount", fee),
        ("arbitrary_calldata_hash", cd_hash),
        ("is_tl_swap", is_deferred),
        ("tl_swap_shares_amounts", slots),
    )
    known = {
        "token": token,
        "chain_id": keys.chain_id,
        "declared_time": declared_time,
        "expected_root": proof.root,
        "calldata_hash": cd_hash,
        "receiver": receiver,
        "relayer_fee": fee,
        "is_deferred": is_deferred,
        "tl_hashchain": form.tl_hashchain if form.is_deferred else None,
        "final_amount": 0 if form.is_deferred else amount,
    }
    return CircuitInputs(mode=CircuitMode.WITHDRAW, private=private, public_template=_template(CircuitMode.WITHDRAW, known))


async def assemble_inputs(
    mode: CircuitMode,
    ledger: Ledger,
    keys: AccountKeys,
    form: Any = None,
    previous: Optional[PrivateStateSnapshot] = None,
    proof: Optional[MerkleProof] = None,
    **kwargs: Any,
) -> CircuitInputs:
    if mode == CircuitMode.INIT:
        return assemble_init(keys)
    if previous is None or proof is None:
        raise ValueError(f"{mode.value} requires the previous state and its Merkle proof")
    if mode == CircuitMode.DEPOSIT:
        if not isinstance(form, DepositForm):
            raise TypeError("deposit requires a DepositForm")
        return await assemble_deposit(ledger, keys, form, previous, proof, **kwargs)
    if not isinstance(form, WithdrawForm):
        raise TypeError("withdraw requires a WithdrawForm")
    return await assemble_withdraw(ledger, keys, form, previous, proof, **kwargs)


def bind_public_signals(inputs: CircuitInputs, signals: Sequence[Any]) -> Tuple[int, ...]:
    """Check prover output against the pinned layout; returns canonical ints."""
    layout = inputs.layout()
    if len(signals) != len(layout):
        raise PublicSignalLayoutError(
            f"{inputs.mode.value} proof has the wrong number of public signals",
            expected=len(layout),
            actual=len(signals),
        )
    values = []
    for name, raw in zip(layout, signals):
        try:
            v = parse_field(raw, name=name)
        except (TypeError, ValueError) as exc:
            raise PublicSignalLayoutError(f"public signal {name} is not a field element: {raw!r}") from exc
        values.append(v)
    for name, expected, got in zip(layout, inputs.public_template, values):
        if expected is not None and expected != got:
            raise PublicSignalLayoutError(f"public signal {name} does not match the assembled input ({got} != {expected})")
    return tuple(values)
