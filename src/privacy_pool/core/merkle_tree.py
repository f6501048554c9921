"""Incremental Merkle tree over field elements (deposit accumulator)."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from privacy_pool.crypto.poseidon import poseidon
from privacy_pool.utils.encoding import field_to_hex
from privacy_pool.utils.hash import SNARK_SCALAR_FIELD, hash_string
from privacy_pool.exceptions import (
    FieldElementInvalid,
    InvalidLeafIndex,
    MerkleTreeCapacity,
)

if TYPE_CHECKING:
    from privacy_pool.core.state import Journal

logger = logging.getLogger(__name__)

Hasher = Callable[..., int]


@dataclass(frozen=True)
class MerklePath:
    """Inclusion path of one leaf: sibling hashes from the leaf level up."""

    index: int
    leaf: int
    siblings: Tuple[int, ...]
    root: int

    @property
    def path_indices(self) -> Tuple[int, ...]:
        """Position bits of the leaf, least significant first (1 = right child)."""
        return tuple((self.index >> level) & 1 for level in range(len(self.siblings)))


def compute_zeros(hasher: Hasher, seed: str, depth: int) -> List[int]:
    """
    Derive the empty-subtree hash of every level.

    ``zeros[0]`` is the seed string mapped into the field and
    ``zeros[l] = H(zeros[l-1], zeros[l-1])``; ``zeros[depth]`` is the root of
    an empty tree. Trees with different seeds never share empty subtrees.
    """
    zeros = [hash_string(seed)]
    for _ in range(depth):
        zeros.append(hasher(zeros[-1], zeros[-1]))
    return zeros


def compute_root(hasher: Hasher, leaf: int, index: int, siblings: Sequence[int]) -> int:
    """Fold a leaf and its siblings up to the root they imply."""
    current = leaf
    for level, sibling in enumerate(siblings):
        if (index >> level) & 1:
            current = hasher(sibling, current)
        else:
            current = hasher(current, sibling)
    return current


class MerkleTree:
    """
    Fixed-depth Merkle tree with incremental appends.

    Appends follow the accumulator algorithm: only ``filled_subtrees`` (the
    rightmost finished left child per level) and ``zeros`` are needed to
    compute the next root. Every node is also kept so the tree can hand out
    inclusion paths and overwrite leaves in place.

    Roots produced by appends are kept forever in the known-root set.
    """

    # Constants
    DEFAULT_DEPTH = 20
    MAX_DEPTH = 32
    DEFAULT_SEED = "empty"

    def __init__(
        self,
        hasher: Hasher = poseidon,
        depth: int = DEFAULT_DEPTH,
        seed: str = DEFAULT_SEED,
        journal: Optional["Journal"] = None,
    ):
        """
        Initialize an empty tree.

        Args:
            hasher: Two-input field hash, must match the proving circuit
            depth: Number of levels below the root (capacity 2**depth)
            seed: Domain seed for the empty-leaf value
            journal: Undo journal to record writes into, if any

        Raises:
            ValueError: If depth is invalid
        """
        if depth < 1 or depth > self.MAX_DEPTH:
            raise ValueError(f"Tree depth must be between 1 and {self.MAX_DEPTH}")

        self.hasher = hasher
        self.depth = depth
        self.capacity = 2**depth
        self.seed = seed
        self.journal = journal

        self.zeros = compute_zeros(hasher, seed, depth)
        self.filled_subtrees: List[int] = self.zeros[:depth]
        self.next_index = 0

        # nodes[level][position] -> hash, level 0 holds the leaves
        self.nodes: List[Dict[int, int]] = [{} for _ in range(depth + 1)]

        self._root = self.zeros[depth]
        self._root_history: List[int] = [self._root]
        self._known_roots: Set[int] = {self._root}

    @classmethod
    def from_leaves(cls, leaves: Iterable[int], **kwargs) -> "MerkleTree":
        """Build a tree by appending ``leaves`` in order."""
        tree = cls(**kwargs)
        tree.insert_many(list(leaves))
        return tree

    # -- journaled writes -------------------------------------------------

    def _set_node(self, level: int, position: int, value: int) -> None:
        layer = self.nodes[level]
        if self.journal is not None and self.journal.active:
            if position in layer:
                old = layer[position]
                self.journal.record(lambda: layer.__setitem__(position, old))
            else:
                self.journal.record(lambda: layer.pop(position, None))
        layer[position] = value

    def _checkpoint(self) -> None:
        if self.journal is None or not self.journal.active:
            return
        next_index = self.next_index
        filled = list(self.filled_subtrees)
        root = self._root
        history_len = len(self._root_history)

        def undo() -> None:
            self.next_index = next_index
            self.filled_subtrees[:] = filled
            self._root = root
            for dropped in self._root_history[history_len:]:
                if dropped not in self._root_history[:history_len]:
                    self._known_roots.discard(dropped)
            del self._root_history[history_len:]

        self.journal.record(undo)

    @staticmethod
    def _check_leaf(leaf: int) -> None:
        if not isinstance(leaf, int) or not 0 <= leaf < SNARK_SCALAR_FIELD:
            raise FieldElementInvalid(f"Leaf is not a field element: {leaf!r}")

    def _frontier(self, level: int) -> int:
        """Position of the node cached in ``filled_subtrees[level]``."""
        return ((self.next_index - 1) >> level) & ~1

    # -- mutation ----------------------------------------------------------

    def insert(self, leaf: int) -> int:
        """
        Append a leaf and return its index.

        Args:
            leaf: Field element (commitment or subset marker)

        Returns:
            int: Leaf index in tree

        Raises:
            MerkleTreeCapacity: If the tree is full
            FieldElementInvalid: If the leaf is not a field element
        """
        self._check_leaf(leaf)
        if self.next_index >= self.capacity:
            raise MerkleTreeCapacity(f"Merkle tree is full (max {self.capacity} leaves)")

        self._checkpoint()
        index = self.next_index
        current = leaf
        self._set_node(0, index, leaf)

        for level in range(self.depth):
            position = index >> level
            if position % 2 == 0:
                self.filled_subtrees[level] = current
                left, right = current, self.zeros[level]
            else:
                left, right = self.filled_subtrees[level], current

            current = self.hasher(left, right)
            self._set_node(level + 1, position >> 1, current)

        self.next_index = index + 1
        self._root = current
        self._root_history.append(current)
        self._known_roots.add(current)

        logger.debug("Inserted leaf %d, root %s", index, field_to_hex(current))
        return index

    def insert_many(self, leaves: Sequence[int]) -> List[int]:
        """
        Append several leaves as one step.

        Capacity and leaf validity are checked for the whole batch before the
        first write, so the batch either lands completely or not at all.
        """
        for leaf in leaves:
            self._check_leaf(leaf)
        if self.next_index + len(leaves) > self.capacity:
            raise MerkleTreeCapacity(
                f"Cannot insert {len(leaves)} leaves: "
                f"{self.capacity - self.next_index} slots left"
            )
        return [self.insert(leaf) for leaf in leaves]

    def update(self, index: int, leaf: int) -> int:
        """
        Overwrite an existing leaf and recompute its path.

        Args:
            index: Position of a previously written leaf
            leaf: New leaf value

        Returns:
            int: The new root

        Raises:
            InvalidLeafIndex: If the index was never written
        """
        self._check_leaf(leaf)
        if not 0 <= index < self.next_index:
            raise InvalidLeafIndex(f"Invalid leaf index: {index}")

        self._checkpoint()
        current = leaf
        position = index
        self._set_node(0, index, leaf)

        for level in range(self.depth):
            layer = self.nodes[level]
            if position == self._frontier(level):
                self.filled_subtrees[level] = current

            if position % 2 == 0:
                left, right = current, layer.get(position + 1, self.zeros[level])
            else:
                left, right = layer.get(position - 1, self.zeros[level]), current

            current = self.hasher(left, right)
            position >>= 1
            self._set_node(level + 1, position, current)

        self._root = current
        return current

    # -- queries -------------------------------------------------------------

    def path_of(self, index: int) -> MerklePath:
        """
        Return the inclusion path of a written leaf against the current root.

        Raises:
            InvalidLeafIndex: If the index was never written
        """
        if not 0 <= index < self.next_index:
            raise InvalidLeafIndex(f"Invalid leaf index: {index}")

        siblings = []
        position = index
        for level in range(self.depth):
            siblings.append(self.nodes[level].get(position ^ 1, self.zeros[level]))
            position >>= 1

        return MerklePath(
            index=index,
            leaf=self.nodes[0][index],
            siblings=tuple(siblings),
            root=self._root,
        )

    def verify_path(self, path: MerklePath) -> bool:
        """Check that a path is internally consistent and matches a known root."""
        if len(path.siblings) != self.depth:
            return False
        computed = compute_root(self.hasher, path.leaf, path.index, path.siblings)
        return computed == path.root and self.is_known_root(computed)

    def is_known_root(self, root: int) -> bool:
        """Check whether ``root`` was ever the root of this tree."""
        return root in self._known_roots

    @property
    def root(self) -> int:
        """Get the current root."""
        return self._root

    @property
    def roots(self) -> List[int]:
        """Every root in the order it was produced, starting with the empty root."""
        return list(self._root_history)

    @property
    def leaves(self) -> List[int]:
        layer = self.nodes[0]
        return [layer[i] for i in range(self.next_index)]

    def get_state(self) -> dict:
        """
        Get the current state of the tree for serialization.

        Returns:
            dict: Tree state including depth, size and root
        """
        return {
            "depth": self.depth,
            "capacity": self.capacity,
            "next_index": self.next_index,
            "root": field_to_hex(self._root),
            "num_roots": len(self._root_history),
        }

    def __len__(self) -> int:
        """Return the number of leaves in the tree."""
        return self.next_index

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(depth={self.depth}, "
            f"leaves={self.next_index}/{self.capacity}, "
            f"root={field_to_hex(self._root)[:18]}...)"
        )


class CommitmentTree(MerkleTree):
    """
    Deposit tree held by a pool.

    Append-only: leaves are commitments and are never rewritten.
    """

    def update(self, index: int, leaf: int) -> int:
        raise TypeError("Commitment tree is append-only")
