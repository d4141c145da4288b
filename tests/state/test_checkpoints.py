# [TESTER] v1

from __future__ import annotations

import json
from pathlib import Path

import pytest

from shieldvault.state.checkpoints import CheckpointKey, InMemoryCheckpointStore, JsonFileCheckpointStore
from shieldvault.state.records import BalanceEntry, Checkpoint, OperationType, combine_balance


TOKEN = "0x" + "AB" * 20


def _checkpoint() -> Checkpoint:
    return Checkpoint(
        current_nonce=2,
        entries=(
            BalanceEntry(nonce=1, shares=1500, nullifier=9),
            BalanceEntry(nonce=0, shares=1000),
        ),
    )


def test_key_canonicalizes_token() -> None:
    a = CheckpointKey("acct", TOKEN)
    b = CheckpointKey("acct", TOKEN.lower())
    assert a == b
    assert a.token == "0x" + "ab" * 20
    assert CheckpointKey("acct", TOKEN, "testnet") != a
    with pytest.raises(ValueError):
        CheckpointKey("", TOKEN)


def test_checkpoint_covers_and_lookup() -> None:
    cp = _checkpoint()
    assert cp.covers(1)
    assert not cp.covers(2)
    assert cp.entry(1).shares == 1500
    assert cp.entry(5) is None
    with pytest.raises(ValueError):
        Checkpoint(current_nonce=-1)


def test_checkpoint_dict_is_sorted_and_round_trips() -> None:
    cp = _checkpoint()
    d = cp.to_dict()
    assert [e["nonce"] for e in d["entries"]] == ["0", "1"]
    back = Checkpoint.from_dict(d)
    assert back.current_nonce == 2
    assert back.entry(1) == BalanceEntry(nonce=1, shares=1500, nullifier=9)
    assert back.entry(0).nullifier is None


def test_combine_balance() -> None:
    assert combine_balance(OperationType.INIT, 0, 1000) == 1000
    assert combine_balance(OperationType.DEPOSIT, 1000, 500) == 1500
    assert combine_balance(OperationType.WITHDRAW, 300, 700) == 300


def test_in_memory_store() -> None:
    store = InMemoryCheckpointStore()
    key = CheckpointKey("acct", TOKEN)
    assert store.get(key) is None
    store.put(key, _checkpoint())
    assert store.get(key).current_nonce == 2
    store.delete(key)
    assert store.get(key) is None
    store.delete(key)


def test_json_file_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "checkpoints.json"
    key = CheckpointKey("acct", TOKEN)
    other = CheckpointKey("acct", TOKEN, "testnet")

    JsonFileCheckpointStore(path).put(key, _checkpoint())
    JsonFileCheckpointStore(path).put(other, Checkpoint(current_nonce=0, entries=(BalanceEntry(0, 7),)))

    store = JsonFileCheckpointStore(path)
    assert store.get(key).entry(1).shares == 1500
    assert store.get(other).current_nonce == 0

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert set(raw) == {key.as_str(), other.as_str()}
    assert not list(path.parent.glob("*.tmp"))

    store.delete(key)
    assert JsonFileCheckpointStore(path).get(key) is None
    assert JsonFileCheckpointStore(path).get(other) is not None


def test_json_file_store_rejects_non_object(tmp_path: Path) -> None:
    path = tmp_path / "checkpoints.json"
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        JsonFileCheckpointStore(path).get(CheckpointKey("acct", TOKEN))
