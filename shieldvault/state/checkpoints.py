"""
Checkpoint store for discovered chain positions.

Keyed by (account id, token, chain mode). It is a cache: the ledger is the
source of truth, and discovery only writes here after a complete walk.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from .canonical import canonical_address, canonical_json_bytes
from .records import Checkpoint


@dataclass(frozen=True)
class CheckpointKey:
    account_id: str
    token: str
    mode: str = "mainnet"

    def __post_init__(self) -> None:
        if not isinstance(self.account_id, str) or not self.account_id:
            raise ValueError("account_id must be a non-empty str")
        if not isinstance(self.mode, str) or not self.mode:
            raise ValueError("mode must be a non-empty str")
        object.__setattr__(self, "token", canonical_address(self.token, name="token"))

    def as_str(self) -> str:
        return f"{self.account_id}|{self.token}|{self.mode}"


class CheckpointStore:
    """Interface; last writer wins."""

    def get(self, key: CheckpointKey) -> Optional[Checkpoint]:
        raise NotImplementedError

    def put(self, key: CheckpointKey, checkpoint: Checkpoint) -> None:
        raise NotImplementedError

    def delete(self, key: CheckpointKey) -> None:
        raise NotImplementedError


@dataclass
class InMemoryCheckpointStore(CheckpointStore):
    _data: Dict[CheckpointKey, Checkpoint] = field(default_factory=dict)

    def get(self, key: CheckpointKey) -> Optional[Checkpoint]:
        return self._data.get(key)

    def put(self, key: CheckpointKey, checkpoint: Checkpoint) -> None:
        self._data[key] = checkpoint

    def delete(self, key: CheckpointKey) -> None:
        self._data.pop(key, None)


class JsonFileCheckpointStore(CheckpointStore):
    """
    All checkpoints in one canonical JSON file.

    Writes go to a temp file in the same directory followed by os.replace,
    so a crash never leaves a truncated file behind.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def _load(self) -> Dict[str, dict]:
        if not self._path.exists():
            return {}
        obj = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(obj, dict):
            raise ValueError(f"checkpoint file is not an object: {self._path}")
        return obj

    def _save(self, data: Dict[str, dict]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self._path.parent), prefix=self._path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(canonical_json_bytes(data))
            os.replace(tmp, self._path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, key: CheckpointKey) -> Optional[Checkpoint]:
        raw = self._load().get(key.as_str())
        return Checkpoint.from_dict(raw) if raw is not None else None

    def put(self, key: CheckpointKey, checkpoint: Checkpoint) -> None:
        data = self._load()
        data[key.as_str()] = checkpoint.to_dict()
        self._save(data)

    def delete(self, key: CheckpointKey) -> None:
        data = self._load()
        if data.pop(key.as_str(), None) is not None:
            self._save(data)
