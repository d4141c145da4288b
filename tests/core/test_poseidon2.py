# [TESTER] v1

from __future__ import annotations

from pathlib import Path

import pytest

from shieldvault.core.field import FIELD_MODULUS
from shieldvault.core.poseidon2 import (
    PARAMS_ENV_VAR,
    default_params,
    hash2,
    load_params,
    params_from_mapping,
    permute,
    poseidon2_hash,
)


def test_default_params_shape() -> None:
    prm = default_params()
    assert prm.width == 4
    assert prm.rounds_full == 8
    assert prm.rounds_partial == 56
    assert len(prm.round_constants) == 64
    assert all(0 <= c < FIELD_MODULUS for row in prm.round_constants for c in row)


def test_bundled_constants_are_the_bn254_instance() -> None:
    rc = default_params().round_constants
    assert rc[0] == (
        0x19B849F69450B06848DA1D39BD5E4A4302BB86744EDC26238B0878E269ED23E5,
        0x265DDFE127DD51BD7239347B758F0A1320EB2CC7450ACC1DAD47F80C8DCF34D6,
        0x199750EC472F1809E0F66A545E1E51624108AC845015C2AA3DFC36BAB497D8AA,
        0x157FF3FE65AC7208110F06A5F74302B14D743EA25067F0FFD032F787C7F1CDF8,
    )
    assert rc[3][3] == 0x0A1CA941F057037526EA200F489BE8D4C37C85BBCCE6A2AEEC91BD6941432447
    assert rc[4][0] == 0x0C6F8F958BE0E93053D7FD4FC54512855535ED1539F051DCB43A26FD926361CF
    assert rc[5][0] == 0x123106A93CD17578D426E8128AC9D90AA9E8A00708E296E084DD57E69CAAF811
    # Partial rounds only add a constant to lane 0.
    assert all(row[1:] == (0, 0, 0) for row in rc[4:60])
    assert all(all(row) for row in rc[:4] + rc[60:])


def test_permutation_known_answer() -> None:
    # Reference vector for Poseidon2 BN254 t=4 (barretenberg, HorizenLabs).
    assert permute([0, 1, 2, 3]) == (
        0x01BD538C2EE014ED5141B29E9AE240BF8DB3FE5B9A38629A9647CF8D76C01737,
        0x239B62E7DB98AA3A2A8F6A0D2FA1709E7A35959AA6C7034814D9DAA90CBAC662,
        0x04CBB44C61D928ED06808456BF758CBF0C18D1E15A7B6DBC8245FA7515D5E3CB,
        0x2E11C5CFF2A22C64D01304B778D78F6998EFF1AB73163A35603F54794C30847A,
    )


def test_hash_is_deterministic_and_canonical() -> None:
    a = poseidon2_hash([1, 2, 3])
    assert a == poseidon2_hash([1, 2, 3])
    assert 0 <= a < FIELD_MODULUS


def test_hash_depends_on_order_and_length() -> None:
    assert hash2(1, 2) != hash2(2, 1)
    # The length is mixed into the capacity lane.
    assert poseidon2_hash([5]) != poseidon2_hash([5, 0])
    assert poseidon2_hash([]) != poseidon2_hash([0])


def test_hash_absorbs_more_than_one_block() -> None:
    short = poseidon2_hash([1, 2, 3])
    longer = poseidon2_hash([1, 2, 3, 4])
    assert short != longer
    assert poseidon2_hash([1, 2, 3, 4, 5, 6, 7]) != poseidon2_hash([1, 2, 3, 4, 5, 6, 8])


def test_hash2_matches_two_input_hash() -> None:
    assert hash2(7, 9) == poseidon2_hash([7, 9])


def test_permute_rejects_wrong_width() -> None:
    with pytest.raises(ValueError):
        permute([1, 2, 3])


def test_negative_inputs_are_rejected() -> None:
    with pytest.raises(ValueError):
        poseidon2_hash([-1])


def test_params_mapping_requires_constants() -> None:
    with pytest.raises(TypeError, match="round_constants"):
        params_from_mapping(
            {"width": 4, "rounds_full": 8, "rounds_partial": 56, "internal_diagonal": ["1", "2", "3", "4"]}
        )


def test_params_mapping_rejects_odd_full_rounds() -> None:
    with pytest.raises(ValueError):
        params_from_mapping(
            {
                "width": 4,
                "rounds_full": 7,
                "rounds_partial": 56,
                "internal_diagonal": ["1", "2", "3", "4"],
                "round_constants": [["1", "0", "0", "0"]] * 63,
            }
        )


def test_env_override_switches_parameter_set(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    params_file = tmp_path / "alt.yaml"
    params_file.write_text(
        "\n".join(
            [
                "name: alt",
                "width: 4",
                "rounds_full: 8",
                "rounds_partial: 56",
                "sbox_degree: 5",
                "internal_diagonal: ['0x02', '0x03', '0x05', '0x07']",
                "round_constants:",
                *(["  - ['0x01', '0x00', '0x00', '0x00']"] * 64),
            ]
        ),
        encoding="utf-8",
    )
    baseline = poseidon2_hash([1, 2])
    monkeypatch.setenv(PARAMS_ENV_VAR, str(params_file))
    default_params.cache_clear()
    try:
        assert default_params().name == "alt"
        assert poseidon2_hash([1, 2]) != baseline
        assert poseidon2_hash([1, 2]) == poseidon2_hash([1, 2], load_params(params_file))
    finally:
        monkeypatch.delenv(PARAMS_ENV_VAR)
        default_params.cache_clear()
    assert poseidon2_hash([1, 2]) == baseline
