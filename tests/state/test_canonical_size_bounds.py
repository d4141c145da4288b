# [TESTER] v1

from __future__ import annotations

import random

import pytest

from shieldvault.state.canonical import (
    bounded_json_utf8_size,
    canonical_address,
    canonical_json_bytes,
    hex_to_bytes,
    hex_to_bytes_fixed,
    int_to_address,
    int_to_bytes32_hex,
)


def test_bounded_json_utf8_size_never_underestimates_canonical_json_bytes() -> None:
    # The prover pre-check relies on this bound before encoding stdin.
    special_strings = [
        "",
        "ascii",
        '"',
        "\\",
        "\n",
        "\t",
        "\x00",
        "\x1f",
        "line sep",
        "emoji😀",
        "multi-byte: ΩЖ中😀",
    ]

    rng = random.Random(0)
    random_strings: list[str] = []
    for _ in range(100):
        b = bytes(rng.randrange(0, 256) for _ in range(rng.randrange(0, 48)))
        random_strings.append(b.decode("latin1"))

    values = [
        None,
        True,
        0,
        -1,
        21888242871839275222246405745257275088548364400416034343698204186575808495616,
        *special_strings,
        *random_strings,
        {"inputs": {"balance": "1000", "siblings": ["0"] * 32}},
        {"k": special_strings},
        [special_strings, {"k": random_strings[:20]}],
    ]

    for v in values:
        actual = len(canonical_json_bytes(v))
        est = bounded_json_utf8_size(v, max_bytes=10**9)
        assert est >= actual


def test_bounded_size_enforces_limits() -> None:
    with pytest.raises(ValueError, match="max_bytes"):
        bounded_json_utf8_size({"k": "x" * 100}, max_bytes=10)
    with pytest.raises(ValueError, match="max_depth"):
        bounded_json_utf8_size([[[[1]]]], max_bytes=1000, max_depth=2)


def test_canonical_json_is_sorted_and_compact() -> None:
    assert canonical_json_bytes({"b": 1, "a": [1, "x"]}) == b'{"a":[1,"x"],"b":1}'


def test_canonical_encoding_rejects_floats_and_surrogates() -> None:
    with pytest.raises(TypeError, match="floats"):
        canonical_json_bytes({"amount": 1.5})
    v = {"s": "\ud800"}
    with pytest.raises(TypeError, match="surrogate"):
        canonical_json_bytes(v)
    with pytest.raises(TypeError, match="surrogate"):
        bounded_json_utf8_size(v, max_bytes=1000)


def test_hex_decoding() -> None:
    assert hex_to_bytes("0xABcd", name="x") == b"\xab\xcd"
    assert hex_to_bytes("", name="x") == b""
    with pytest.raises(ValueError):
        hex_to_bytes("0xabc", name="x")
    with pytest.raises(ValueError):
        hex_to_bytes_fixed("0xAA  ", nbytes=2, name="x")
    with pytest.raises(ValueError):
        hex_to_bytes_fixed("0xaa", nbytes=2, name="x")


def test_address_helpers() -> None:
    mixed = "0x" + "Ab" * 20
    assert canonical_address(mixed) == "0x" + "ab" * 20
    assert canonical_address("ab" * 20) == "0x" + "ab" * 20
    assert int_to_address(1) == "0x" + "00" * 19 + "01"
    with pytest.raises(ValueError):
        canonical_address("0x1234")
    with pytest.raises(ValueError):
        int_to_address(1 << 160)
    assert int_to_bytes32_hex(255) == "0x" + "00" * 31 + "ff"

