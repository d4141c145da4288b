"""
Content-addressed storage for published order-chain heads.
"""

from __future__ import annotations

import hashlib
from typing import Dict, Optional


class ContentStore:
    def put(self, data: bytes) -> str:
        raise NotImplementedError

    def get(self, cid: str) -> Optional[bytes]:
        raise NotImplementedError


class InMemoryContentStore(ContentStore):
    """Content ids are the lowercase sha256 hex of the stored bytes."""

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}

    def put(self, data: bytes) -> str:
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("data must be bytes")
        cid = hashlib.sha256(bytes(data)).hexdigest()
        self._blobs[cid] = bytes(data)
        return cid

    def get(self, cid: str) -> Optional[bytes]:
        return self._blobs.get(cid)

    def __len__(self) -> int:
        return len(self._blobs)
