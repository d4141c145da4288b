# [TESTER] v1

from __future__ import annotations

import asyncio

import pytest

from shieldvault.config import LedgerQueryConfig
from shieldvault.core.commitment import NonceDiscoveryAggregate
from shieldvault.core.ctr_cipher import BALANCE_SLOT, encrypt
from shieldvault.core.keys import AccountKeys
from shieldvault.errors import DecryptionError, ReconstructionError, TransientLedgerError
from shieldvault.integration.discovery import NonceDiscovery
from shieldvault.integration.ledger import NonceCommitmentInfo, call_with_retry
from shieldvault.integration.memory_ledger import InMemoryLedger
from shieldvault.state.checkpoints import CheckpointKey, InMemoryCheckpointStore
from shieldvault.state.records import BalanceEntry, Checkpoint, OperationType


TOKEN = "0x" + "ab" * 20
OTHER_TOKEN = "0x" + "cd" * 20
FAST = LedgerQueryConfig(timeout_s=1.0, max_attempts=1, backoff_s=0.0)


def _keys(token: str = TOKEN) -> AccountKeys:
    return AccountKeys.from_signature(bytes(range(65)), 1, token)


def _setup(token: str = TOKEN):
    ledger = InMemoryLedger()
    ledger.register_token(token)
    store = InMemoryCheckpointStore()
    return ledger, store, NonceDiscovery(ledger, store, FAST), _keys(token), CheckpointKey("acct", token)


def test_uninitialized_account() -> None:
    _, store, discovery, keys, key = _setup()
    result = asyncio.run(discovery.discover(keys, key))
    assert not result.initialized
    assert not result.stale
    assert result.current_nonce == 0
    assert result.balance == 0
    assert store.get(key).current_nonce == 0


def test_balance_follows_init_deposit_withdraw() -> None:
    ledger, store, discovery, keys, key = _setup()

    ledger.record_init(keys, 500)
    r0 = asyncio.run(discovery.discover(keys, key))
    assert (r0.current_nonce, r0.balance) == (1, 500)

    ledger.record_deposit(keys, 1, previous_shares=500, shares_minted=200, nullifier=11)
    r1 = asyncio.run(discovery.discover(keys, key))
    assert (r1.current_nonce, r1.balance) == (2, 700)
    assert r1.latest.nullifier == 11

    ledger.record_withdraw(keys, 2, remaining_shares=300, nullifier=12)
    r2 = asyncio.run(discovery.discover(keys, key))
    assert (r2.current_nonce, r2.balance) == (3, 300)
    assert r2.previous_nonce == 2

    assert [e.shares for e in r2.entries] == [500, 700, 300]
    assert store.get(key).current_nonce == 3


def test_walk_resumes_from_checkpoint() -> None:
    ledger, _, discovery, keys, key = _setup()
    ledger.record_init(keys, 500)
    ledger.record_deposit(keys, 1, previous_shares=500, shares_minted=200, nullifier=11)
    asyncio.run(discovery.discover(keys, key))

    ledger.calls.clear()
    ledger.record_withdraw(keys, 2, remaining_shares=100, nullifier=12)
    result = asyncio.run(discovery.discover(keys, key))
    assert result.balance == 100
    # nonce 2 present, nonce 3 absent
    assert ledger.calls["get_nonce_commitment_info"] == 2


def test_discovery_entry_aggregates_every_present_nonce() -> None:
    ledger, _, discovery, keys, key = _setup()
    ledger.record_init(keys, 500)
    ledger.record_deposit(keys, 1, previous_shares=500, shares_minted=1, nullifier=3)
    result = asyncio.run(discovery.discover(keys, key))

    agg = NonceDiscoveryAggregate()
    agg.absorb(keys.nonce_commitment(0))
    agg.absorb(keys.nonce_commitment(1))
    assert result.discovery_entry == agg.coordinates()


def test_current_nonce_never_decreases() -> None:
    ledger, _, discovery, keys, key = _setup()
    seen = []
    ledger.record_init(keys, 10)
    for n in range(1, 4):
        seen.append(asyncio.run(discovery.discover(keys, key)).current_nonce)
        ledger.record_deposit(keys, n, previous_shares=10 * n, shares_minted=10, nullifier=n)
    seen.append(asyncio.run(discovery.discover(keys, key)).current_nonce)
    assert seen == sorted(seen)
    assert seen[-1] == 4


def test_unavailable_ledger_returns_cached_checkpoint_flagged_stale() -> None:
    ledger, store, discovery, keys, key = _setup()
    ledger.record_init(keys, 500)
    asyncio.run(discovery.discover(keys, key))
    ledger.record_deposit(keys, 1, previous_shares=500, shares_minted=200, nullifier=11)

    ledger.unavailable = True
    result = asyncio.run(discovery.discover(keys, key))
    assert result.stale
    assert result.warning
    assert (result.current_nonce, result.balance) == (1, 500)
    assert store.get(key).current_nonce == 1


def test_unavailable_ledger_without_cache() -> None:
    ledger, store, discovery, keys, key = _setup()
    ledger.unavailable = True
    result = asyncio.run(discovery.discover(keys, key))
    assert result.stale
    assert not result.initialized
    assert store.get(key) is None


def test_query_timeout_falls_back_to_cache() -> None:
    ledger, store, _, keys, key = _setup()
    ledger.record_init(keys, 500)
    ledger.latency_s = 0.2
    discovery = NonceDiscovery(ledger, store, LedgerQueryConfig(timeout_s=0.01, max_attempts=1, backoff_s=0.0))
    result = asyncio.run(discovery.discover(keys, key))
    assert result.stale
    assert "timed out" in result.warning


def test_undecryptable_record_raises_and_is_not_cached() -> None:
    ledger, store, discovery, keys, key = _setup()
    ledger.record_init(keys, 500)
    ledger.record_raw(
        keys.nonce_commitment(1),
        NonceCommitmentInfo(
            operation_type=OperationType.WITHDRAW,
            shares_minted=0,
            encrypted_balance=encrypt(1 << 200, keys.viewing_key, BALANCE_SLOT),
            encrypted_nullifier=0,
        ),
    )
    with pytest.raises(DecryptionError):
        asyncio.run(discovery.discover(keys, key))
    assert store.get(key) is None


def test_incomplete_cache_is_rescanned() -> None:
    ledger, store, discovery, keys, key = _setup()
    ledger.record_init(keys, 500)
    ledger.record_deposit(keys, 1, previous_shares=500, shares_minted=200, nullifier=11)
    store.put(key, Checkpoint(current_nonce=2, entries=(BalanceEntry(nonce=0, shares=500),)))
    result = asyncio.run(discovery.discover(keys, key))
    assert (result.current_nonce, result.balance) == (2, 700)


def test_ledger_shorter_than_cache_is_an_error() -> None:
    ledger, store, discovery, keys, key = _setup()
    ledger.record_init(keys, 500)
    store.put(key, Checkpoint(current_nonce=3, entries=(BalanceEntry(nonce=0, shares=500),)))
    with pytest.raises(ReconstructionError):
        asyncio.run(discovery.discover(keys, key))


def test_concurrent_discoveries() -> None:
    ledger, store, discovery, keys, key = _setup()
    ledger.register_token(OTHER_TOKEN)
    other_keys = _keys(OTHER_TOKEN)
    other_key = CheckpointKey("acct", OTHER_TOKEN)
    ledger.record_init(keys, 500)
    ledger.record_init(other_keys, 42)

    async def main():
        assert discovery._lock_for(key) is discovery._lock_for(key)
        assert discovery._lock_for(key) is not discovery._lock_for(other_key)
        return await discovery.discover_all([(keys, key), (keys, key), (other_keys, other_key)])

    results = asyncio.run(main())
    assert [r.balance for r in results] == [500, 500, 42]
    assert results[0].checkpoint() == results[1].checkpoint()


def test_instance_is_reusable_across_event_loops() -> None:
    ledger, _, discovery, keys, key = _setup()
    ledger.record_init(keys, 500)
    ledger.latency_s = 0.02

    async def contended():
        # Same key twice: the second call waits on the lock.
        return await discovery.discover_all([(keys, key), (keys, key)])

    first = asyncio.run(contended())
    second = asyncio.run(contended())
    assert [r.balance for r in first + second] == [500] * 4


def test_call_with_retry_retries_transient_errors() -> None:
    attempts = []

    async def flaky() -> int:
        attempts.append(1)
        if len(attempts) < 3:
            raise TransientLedgerError("busy")
        return 7

    assert asyncio.run(call_with_retry(flaky, timeout_s=1.0, max_attempts=3)) == 7
    assert len(attempts) == 3

    attempts.clear()
    with pytest.raises(TransientLedgerError):
        asyncio.run(call_with_retry(flaky, timeout_s=1.0, max_attempts=2))


def test_call_with_retry_does_not_retry_other_errors() -> None:
    attempts = []

    async def broken() -> int:
        attempts.append(1)
        raise KeyError("x")

    with pytest.raises(KeyError):
        asyncio.run(call_with_retry(broken, timeout_s=1.0, max_attempts=3))
    assert len(attempts) == 1


def test_call_with_retry_reports_the_final_timeout() -> None:
    attempts = []

    async def slow() -> int:
        attempts.append(1)
        await asyncio.sleep(1.0)
        return 1

    with pytest.raises(TransientLedgerError, match="root timed out") as info:
        asyncio.run(call_with_retry(slow, timeout_s=0.01, max_attempts=2, what="root"))
    assert len(attempts) == 2
    assert isinstance(info.value.__cause__, asyncio.TimeoutError)
