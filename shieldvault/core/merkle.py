"""
Lean incremental Merkle tree (append-only, binary).

- A node without a right sibling is carried to the next level unchanged.
- depth is the smallest d with 2^d >= size (0 for a single leaf).
- In a proof, 0 marks "no sibling at this level"; zero leaves are rejected
  so the marker is unambiguous.
- Proofs handed to the circuit are right-padded with 0 to MAX_DEPTH.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .field import require_field
from .poseidon2 import hash2


MAX_DEPTH = 32

Hasher = Callable[[int, int], int]


@dataclass(frozen=True)
class MerkleProof:
    leaf: int
    index: int
    siblings: Tuple[int, ...]
    root: int
    depth: int

    def padded_siblings(self, max_depth: int = MAX_DEPTH) -> Tuple[int, ...]:
        return pad_siblings(self.siblings, max_depth)


def depth_for_size(size: int) -> int:
    if not isinstance(size, int) or isinstance(size, bool) or size < 0:
        raise ValueError("size must be a non-negative int")
    depth = 0
    while (1 << depth) < size:
        depth += 1
    return depth


def pad_siblings(siblings: Sequence[int], max_depth: int = MAX_DEPTH) -> Tuple[int, ...]:
    if len(siblings) > max_depth:
        raise ValueError(f"proof has {len(siblings)} siblings, max depth is {max_depth}")
    return tuple(siblings) + (0,) * (max_depth - len(siblings))


def compute_root(
    leaf: int,
    index: int,
    siblings: Sequence[int],
    depth: int,
    hasher: Hasher = hash2,
) -> int:
    if not isinstance(index, int) or isinstance(index, bool) or index < 0:
        raise ValueError("index must be a non-negative int")
    if depth > len(siblings):
        raise ValueError("not enough siblings for depth")
    if index >> depth:
        raise ValueError("index does not fit the tree depth")
    node = leaf
    for level in range(depth):
        sibling = siblings[level]
        if (index >> level) & 1:
            node = hasher(sibling, node)
        elif sibling != 0:
            node = hasher(node, sibling)
    return node


def verify_proof(proof: MerkleProof, hasher: Hasher = hash2) -> bool:
    try:
        return compute_root(proof.leaf, proof.index, proof.siblings, proof.depth, hasher) == proof.root
    except ValueError:
        return False


@dataclass
class LeanIMT:
    """Append-only tree; every level is kept so proofs are cheap."""

    hasher: Hasher = hash2
    _levels: List[List[int]] = field(default_factory=lambda: [[]])
    _index: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_leaves(cls, leaves: Iterable[int], hasher: Hasher = hash2) -> "LeanIMT":
        tree = cls(hasher=hasher)
        tree.insert_many(leaves)
        return tree

    @property
    def size(self) -> int:
        return len(self._levels[0])

    @property
    def depth(self) -> int:
        return depth_for_size(self.size)

    @property
    def root(self) -> int:
        if self.size == 0:
            return 0
        return self._levels[self.depth][0]

    def leaves(self) -> Tuple[int, ...]:
        return tuple(self._levels[0])

    def has_leaf(self, leaf: int) -> bool:
        return leaf in self._index

    def index_of(self, leaf: int) -> Optional[int]:
        return self._index.get(leaf)

    def insert(self, leaf: int) -> int:
        value = require_field(leaf, name="leaf")
        if value == 0:
            raise ValueError("zero leaves are not allowed")
        if value in self._index:
            raise ValueError("leaf already present")
        index = self.size
        self._levels[0].append(value)
        self._index[value] = index

        depth = self.depth
        while len(self._levels) <= depth:
            self._levels.append([])
        node = value
        node_index = index
        for level in range(depth):
            if node_index & 1:
                node = self.hasher(self._levels[level][node_index - 1], node)
            parent = node_index >> 1
            above = self._levels[level + 1]
            if parent < len(above):
                above[parent] = node
            else:
                above.append(node)
            node_index = parent
        return index

    def insert_many(self, leaves: Iterable[int]) -> None:
        for leaf in leaves:
            self.insert(leaf)

    def generate_proof(self, index: int) -> MerkleProof:
        if not 0 <= index < self.size:
            raise IndexError(f"leaf index {index} out of range for size {self.size}")
        depth = self.depth
        siblings: List[int] = []
        node_index = index
        for level in range(depth):
            nodes = self._levels[level]
            sibling_index = node_index ^ 1
            siblings.append(nodes[sibling_index] if sibling_index < len(nodes) else 0)
            node_index >>= 1
        return MerkleProof(
            leaf=self._levels[0][index],
            index=index,
            siblings=tuple(siblings),
            root=self.root,
            depth=depth,
        )
