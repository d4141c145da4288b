"""
Records and the checkpoint cache.
"""

from .records import BalanceEntry, Checkpoint, NonceRecord, OperationType, PrivateStateSnapshot
from .checkpoints import CheckpointKey, CheckpointStore, InMemoryCheckpointStore, JsonFileCheckpointStore

__all__ = [
    "BalanceEntry",
    "Checkpoint",
    "NonceRecord",
    "OperationType",
    "PrivateStateSnapshot",
    "CheckpointKey",
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "JsonFileCheckpointStore",
]
