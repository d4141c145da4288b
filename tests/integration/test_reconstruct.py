# [TESTER] v1

from __future__ import annotations

import asyncio

import pytest

from shieldvault.config import LedgerQueryConfig
from shieldvault.core.commitment import reconstruct_leaf
from shieldvault.core.keys import AccountKeys
from shieldvault.core.merkle import verify_proof
from shieldvault.errors import LeafNotFoundError, NonceUnknownError, NotInitializedError, RootMismatchError
from shieldvault.integration.discovery import DiscoveryResult, NonceDiscovery
from shieldvault.integration.memory_ledger import InMemoryLedger
from shieldvault.integration.merkle_prover import prove_membership
from shieldvault.integration.reconstruct import load_previous_state
from shieldvault.state.checkpoints import CheckpointKey, InMemoryCheckpointStore
from shieldvault.state.records import BalanceEntry


TOKEN = "0x" + "ab" * 20
FAST = LedgerQueryConfig(timeout_s=1.0, max_attempts=1, backoff_s=0.0)


def _account(*, serve_proofs: bool = True):
    ledger = InMemoryLedger(serve_proofs=serve_proofs)
    ledger.register_token(TOKEN)
    keys = AccountKeys.from_signature(bytes(range(65)), 1, TOKEN)
    ledger.append_foreign_leaf(TOKEN, 123456)
    ledger.record_init(keys, 1000)
    ledger.append_foreign_leaf(TOKEN, 654321)
    ledger.record_deposit(keys, 1, previous_shares=1000, shares_minted=500, nullifier=77)
    ledger.append_foreign_leaf(TOKEN, 999)
    return ledger, keys


def _discover(ledger: InMemoryLedger, keys: AccountKeys) -> DiscoveryResult:
    discovery = NonceDiscovery(ledger, InMemoryCheckpointStore(), FAST)
    return asyncio.run(discovery.discover(keys, CheckpointKey("acct", TOKEN)))


def test_previous_state_matches_ledger_leaf() -> None:
    ledger, keys = _account()
    previous = asyncio.run(load_previous_state(ledger, keys, _discover(ledger, keys), query=FAST))
    assert previous.nonce == 1
    assert previous.shares == 1500
    assert previous.nullifier == 77
    assert previous.nonce_commitment == keys.nonce_commitment(1)
    assert previous.leaf == reconstruct_leaf(1500, 77, keys.spending_key, 0, keys.nonce_commitment(1))
    assert ledger.tree(TOKEN).has_leaf(previous.leaf)


def test_stale_discovery_blocks() -> None:
    ledger, keys = _account()
    stale = DiscoveryResult(current_nonce=2, entries=(), initialized=True, stale=True, warning="offline")
    with pytest.raises(NonceUnknownError, match="offline"):
        asyncio.run(load_previous_state(ledger, keys, stale, query=FAST))


def test_uninitialized_account_is_rejected() -> None:
    ledger, keys = _account()
    empty = DiscoveryResult(current_nonce=0, entries=(), initialized=False)
    with pytest.raises(NotInitializedError):
        asyncio.run(load_previous_state(ledger, keys, empty, query=FAST))


def test_wrong_balance_is_reported_with_leaf_and_root() -> None:
    ledger, keys = _account()
    wrong = DiscoveryResult(
        current_nonce=2,
        entries=(BalanceEntry(nonce=0, shares=1000, nullifier=0), BalanceEntry(nonce=1, shares=1499, nullifier=77)),
        initialized=True,
    )
    with pytest.raises(LeafNotFoundError) as info:
        asyncio.run(load_previous_state(ledger, keys, wrong, query=FAST))
    assert info.value.root == ledger.tree(TOKEN).root
    assert info.value.nonce == 1
    assert "root=0x" in str(info.value)


def test_missing_nullifier_is_read_back_from_the_ledger() -> None:
    ledger, keys = _account()
    partial = DiscoveryResult(
        current_nonce=2,
        entries=(BalanceEntry(nonce=0, shares=1000), BalanceEntry(nonce=1, shares=1500)),
        initialized=True,
    )
    previous = asyncio.run(load_previous_state(ledger, keys, partial, query=FAST))
    assert previous.nullifier == 77


@pytest.mark.parametrize("serve_proofs", [True, False])
def test_membership_proof_verifies_against_known_root(serve_proofs: bool) -> None:
    ledger, keys = _account(serve_proofs=serve_proofs)
    previous = asyncio.run(load_previous_state(ledger, keys, _discover(ledger, keys), query=FAST))
    root = ledger.tree(TOKEN).root
    proof = asyncio.run(prove_membership(ledger, TOKEN, previous.leaf, root, query=FAST))
    assert proof.root == root
    assert proof.leaf == previous.leaf
    assert proof.index == ledger.tree(TOKEN).index_of(previous.leaf)
    assert verify_proof(proof)
    assert ledger.calls["get_leaves"] == (0 if serve_proofs else 1)


@pytest.mark.parametrize("serve_proofs", [True, False])
def test_membership_proof_against_wrong_root(serve_proofs: bool) -> None:
    ledger, keys = _account(serve_proofs=serve_proofs)
    leaf = ledger.tree(TOKEN).leaves()[1]
    with pytest.raises(RootMismatchError):
        asyncio.run(prove_membership(ledger, TOKEN, leaf, ledger.tree(TOKEN).root + 1, query=FAST))


def test_membership_proof_for_unknown_leaf() -> None:
    ledger, _ = _account()
    with pytest.raises(LeafNotFoundError):
        asyncio.run(prove_membership(ledger, TOKEN, 424242, ledger.tree(TOKEN).root, query=FAST))
