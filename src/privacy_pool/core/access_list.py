"""Subset trees for compliance attestations (allow lists and block lists).

A subset tree mirrors the deposit tree index for index. Each leaf marks
whether the deposit at the same index is a member of the subset. The
withdrawer proves, inside the circuit, that the leaf at their deposit index is
the expected marker, and publishes only the subset root. The pool never
stores subset roots; a compliance actor builds the tree off the critical path
and hands out the root and paths.
"""

import enum
import logging
from typing import Iterable, Optional

from privacy_pool.core.merkle_tree import Hasher, MerkleTree
from privacy_pool.crypto.poseidon import poseidon
from privacy_pool.utils.hash import hash_string

logger = logging.getLogger(__name__)

ALLOWED = hash_string("allowed")
BLOCKED = hash_string("blocked")


class AccessType(enum.IntEnum):
    """How the circuit reads subset membership."""

    BLOCKLIST = 0
    ALLOWLIST = 1


class SubsetTree(MerkleTree):
    """
    Allow/block list over deposit indices.

    Unset indices take the list's default marker: everything is allowed on a
    block list until blocked, nothing is allowed on an allow list until
    allowed. Writing past the current end pads the gap with that default.
    """

    DEFAULT_SEED = ""

    def __init__(
        self,
        access_type: AccessType = AccessType.BLOCKLIST,
        hasher: Hasher = poseidon,
        depth: int = MerkleTree.DEFAULT_DEPTH,
        seed: Optional[str] = None,
    ):
        super().__init__(
            hasher=hasher,
            depth=depth,
            seed=self.DEFAULT_SEED if seed is None else seed,
        )
        self.access_type = AccessType(access_type)

    @property
    def default_marker(self) -> int:
        return ALLOWED if self.access_type == AccessType.BLOCKLIST else BLOCKED

    def _set_marker(self, index: int, marker: int) -> int:
        if index < 0:
            raise ValueError(f"Invalid index: {index}")
        if index >= self.next_index:
            gap = index - self.next_index
            self.insert_many([self.default_marker] * gap + [marker])
            return self.root
        return self.update(index, marker)

    def allow(self, index: int) -> int:
        """Mark the deposit at ``index`` as allowed and return the new subset root."""
        logger.debug("Subset allow %d", index)
        return self._set_marker(index, ALLOWED)

    def block(self, index: int) -> int:
        """Mark the deposit at ``index`` as blocked and return the new subset root."""
        logger.debug("Subset block %d", index)
        return self._set_marker(index, BLOCKED)

    def allow_many(self, indices: Iterable[int]) -> int:
        for index in indices:
            self.allow(index)
        return self.root

    def block_many(self, indices: Iterable[int]) -> int:
        for index in indices:
            self.block(index)
        return self.root

    def is_allowed(self, index: int) -> bool:
        """Whether a withdrawal of the deposit at ``index`` can prove compliance."""
        if index < self.next_index:
            return self.nodes[0][index] == ALLOWED
        return self.default_marker == ALLOWED

    def extend_to(self, size: int) -> int:
        """Pad the list with the default marker until it covers ``size`` deposits."""
        if size > self.next_index:
            self.insert_many([self.default_marker] * (size - self.next_index))
        return self.root
