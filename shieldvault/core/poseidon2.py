"""
Poseidon2 permutation and sponge hash over the BN254 scalar field.

Parameters live in `shieldvault/params/poseidon2_bn254_t4.yaml` (the
barretenberg / HorizenLabs BN254 t=4 instance); set
`SHIELDVAULT_POSEIDON2_PARAMS` to load a different parameter file. The
loaded parameters are validated once and cached.

Sponge: width 4, rate 3, the capacity lane starts at `len(inputs) << 64`.
Inputs are absorbed three at a time, the permutation runs whenever the
cache is full, and squeezing adds the remaining cache, permutes and
returns lane 0.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Tuple

import yaml

from .field import FIELD_MODULUS, parse_field, to_field


PARAMS_ENV_VAR = "SHIELDVAULT_POSEIDON2_PARAMS"

RATE = 3


@dataclass(frozen=True)
class Poseidon2Params:
    name: str
    width: int
    rounds_full: int
    rounds_partial: int
    sbox_degree: int
    internal_diagonal: Tuple[int, ...]
    round_constants: Tuple[Tuple[int, ...], ...]

    def __post_init__(self) -> None:
        if self.width != 4:
            raise ValueError("only width-4 Poseidon2 is supported")
        if self.rounds_full <= 0 or self.rounds_full % 2:
            raise ValueError("rounds_full must be a positive even int")
        if self.rounds_partial <= 0:
            raise ValueError("rounds_partial must be positive")
        if self.sbox_degree not in (3, 5, 7):
            raise ValueError("sbox_degree must be 3, 5 or 7")
        if len(self.internal_diagonal) != self.width:
            raise ValueError("internal_diagonal must have width entries")
        if len(self.round_constants) != self.rounds_full + self.rounds_partial:
            raise ValueError("round_constants must have one row per round")
        for row in self.round_constants:
            if len(row) != self.width:
                raise ValueError("each round_constants row must have width entries")


def _default_params_path() -> Path:
    # shieldvault/core/poseidon2.py -> shieldvault/ -> params/
    return Path(__file__).resolve().parents[1] / "params" / "poseidon2_bn254_t4.yaml"


def params_from_mapping(obj: Mapping[str, Any]) -> Poseidon2Params:
    if not isinstance(obj, Mapping):
        raise TypeError("Poseidon2 parameter file must be a mapping")
    width = obj.get("width")
    rounds_full = obj.get("rounds_full")
    rounds_partial = obj.get("rounds_partial")
    for key, value in (("width", width), ("rounds_full", rounds_full), ("rounds_partial", rounds_partial)):
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"{key} must be an int")
    sbox_degree = obj.get("sbox_degree", 5)
    diagonal = obj.get("internal_diagonal")
    if not isinstance(diagonal, list):
        raise TypeError("internal_diagonal must be a list")

    rc_raw = obj.get("round_constants")
    if not isinstance(rc_raw, list):
        raise TypeError("round_constants must be a list of rows")
    rc = tuple(
        tuple(parse_field(v, name="round_constant") for v in row) for row in rc_raw if isinstance(row, list)
    )
    if len(rc) != len(rc_raw):
        raise TypeError("round_constants rows must be lists")

    return Poseidon2Params(
        name=str(obj.get("name", "poseidon2")),
        width=width,
        rounds_full=rounds_full,
        rounds_partial=rounds_partial,
        sbox_degree=int(sbox_degree),
        internal_diagonal=tuple(parse_field(v, name="internal_diagonal") for v in diagonal),
        round_constants=rc,
    )


def load_params(path: Path) -> Poseidon2Params:
    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    return params_from_mapping(obj)


@lru_cache(maxsize=1)
def default_params() -> Poseidon2Params:
    override = os.environ.get(PARAMS_ENV_VAR, "").strip()
    return load_params(Path(override) if override else _default_params_path())


def _external_linear_layer(s: list) -> None:
    # M4 = [[5,7,1,3],[4,6,1,1],[1,3,5,7],[1,1,4,6]]
    a, b, c, d = s
    p = FIELD_MODULUS
    s[0] = (5 * a + 7 * b + c + 3 * d) % p
    s[1] = (4 * a + 6 * b + c + d) % p
    s[2] = (a + 3 * b + 5 * c + 7 * d) % p
    s[3] = (a + b + 4 * c + 6 * d) % p


def _internal_linear_layer(s: list, diagonal: Sequence[int]) -> None:
    p = FIELD_MODULUS
    total = sum(s) % p
    for i in range(len(s)):
        s[i] = (s[i] * diagonal[i] + total) % p


def permute(state: Sequence[int], params: Optional[Poseidon2Params] = None) -> Tuple[int, ...]:
    prm = params or default_params()
    if len(state) != prm.width:
        raise ValueError(f"state must have {prm.width} lanes")
    p = FIELD_MODULUS
    d = prm.sbox_degree
    s = [to_field(x, name="state") for x in state]
    half = prm.rounds_full // 2
    rc = prm.round_constants

    _external_linear_layer(s)
    r = 0
    for _ in range(half):
        s = [pow((x + c) % p, d, p) for x, c in zip(s, rc[r])]
        _external_linear_layer(s)
        r += 1
    for _ in range(prm.rounds_partial):
        s[0] = pow((s[0] + rc[r][0]) % p, d, p)
        _internal_linear_layer(s, prm.internal_diagonal)
        r += 1
    for _ in range(half):
        s = [pow((x + c) % p, d, p) for x, c in zip(s, rc[r])]
        _external_linear_layer(s)
        r += 1
    return tuple(s)


def poseidon2_hash(inputs: Sequence[int], params: Optional[Poseidon2Params] = None) -> int:
    """Hash a sequence of field elements to one field element."""
    prm = params or default_params()
    values = [to_field(v, name="input") for v in inputs]
    state = [0] * prm.width
    state[RATE] = len(values) << 64

    cache: list = []
    for v in values:
        if len(cache) == RATE:
            for i, c in enumerate(cache):
                state[i] = (state[i] + c) % FIELD_MODULUS
            state = list(permute(state, prm))
            cache = []
        cache.append(v)
    for i, c in enumerate(cache):
        state[i] = (state[i] + c) % FIELD_MODULUS
    return permute(state, prm)[0]


def hash2(a: int, b: int) -> int:
    return poseidon2_hash((a, b))
