"""
Configuration dataclasses and YAML loading.

Every section has working defaults; a YAML file only needs the keys it
overrides. Unknown keys are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Tuple

import yaml


# drand "evmnet" (BN254, signatures on G1, public key on G2)
EVMNET_PUBLIC_KEY_HEX = (
    "07e1d1d335df83fa98462005690372c643340060d205306a9aa8106b6bd0b382"
    "0557ec32c2ad488e4d4f6008f89a346f18492092ccc0d594610de2732c8b808f"
    "0095685ae3a85ba243747b1b2f426049010f6b73a0cf1d389351d5aaaa1047f6"
    "297d3a4f9749b33eb2d904c9d9ebf17224150ddd7abd7567a9bec6c74480ee0b"
)


@dataclass(frozen=True)
class BeaconConfig:
    base_url: str = "https://api.drand.sh"
    beacon_id: str = "evmnet"
    genesis_time: int = 1727521075
    period_s: int = 3
    public_key_hex: str = EVMNET_PUBLIC_KEY_HEX
    timeout_s: float = 5.0


@dataclass(frozen=True)
class LedgerQueryConfig:
    # Applied to every individual ledger read.
    timeout_s: float = 10.0
    max_attempts: int = 3
    backoff_s: float = 0.25


@dataclass(frozen=True)
class ProverConfig:
    enabled: bool = False
    # External prover command; receives JSON on stdin; returns JSON on stdout.
    prover_cmd: Optional[Sequence[str]] = None
    # If False, prover_cmd[0] must be an absolute path (fail-closed).
    allow_path_lookup: bool = False
    timeout_s: float = 300.0
    max_input_bytes: int = 256_000
    max_stdout_bytes: int = 4_000_000
    max_stderr_bytes: int = 16_000


@dataclass(frozen=True)
class ProtocolConfig:
    chain_id: int = 11155111
    max_tree_depth: int = 32
    max_deferred_orders: int = 10
    round_step: int = 1000
    max_share_bits: int = 128
    checkpoint_mode: str = "mainnet"


@dataclass(frozen=True)
class ShieldVaultConfig:
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    beacon: BeaconConfig = field(default_factory=BeaconConfig)
    ledger: LedgerQueryConfig = field(default_factory=LedgerQueryConfig)
    prover: ProverConfig = field(default_factory=ProverConfig)


def _check_value(section: str, name: str, default: Any, value: Any) -> Any:
    where = f"{section}.{name}"
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise TypeError(f"{where} must be a bool")
        return value
    if isinstance(default, int):
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"{where} must be an int")
        if value < 0:
            raise ValueError(f"{where} must be non-negative")
        return value
    if isinstance(default, float):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise TypeError(f"{where} must be a number")
        if value <= 0:
            raise ValueError(f"{where} must be positive")
        return float(value)
    if isinstance(default, str):
        if not isinstance(value, str) or not value:
            raise TypeError(f"{where} must be a non-empty str")
        return value
    # Optional command lists
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise TypeError(f"{where} must be a list of non-empty str")
    return tuple(value)


def _section(cls: type, section: str, raw: Any) -> Any:
    base = cls()
    if raw is None:
        return base
    if not isinstance(raw, Mapping):
        raise TypeError(f"{section} must be a mapping")
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise ValueError(f"unknown keys in {section}: {', '.join(map(str, unknown))}")
    updates = {k: _check_value(section, k, getattr(base, k), v) for k, v in raw.items()}
    return replace(base, **updates)


_SECTIONS: Tuple[Tuple[str, type], ...] = (
    ("protocol", ProtocolConfig),
    ("beacon", BeaconConfig),
    ("ledger", LedgerQueryConfig),
    ("prover", ProverConfig),
)


def config_from_mapping(obj: Mapping[str, Any]) -> ShieldVaultConfig:
    if not isinstance(obj, Mapping):
        raise TypeError("config must be a mapping")
    unknown = sorted(set(obj) - {name for name, _ in _SECTIONS})
    if unknown:
        raise ValueError(f"unknown config sections: {', '.join(map(str, unknown))}")
    return ShieldVaultConfig(**{name: _section(cls, name, obj.get(name)) for name, cls in _SECTIONS})


def load_config(path: Optional[Path] = None) -> ShieldVaultConfig:
    if path is None:
        return ShieldVaultConfig()
    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    return config_from_mapping(obj or {})
