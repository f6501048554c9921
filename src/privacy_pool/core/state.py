"""Per-pool mutable state and its undo journal."""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List

from privacy_pool.core.merkle_tree import CommitmentTree, Hasher
from privacy_pool.core.nullifier import NullifierLedger

logger = logging.getLogger(__name__)


class Journal:
    """
    Undo log shared by the components of one pool.

    Components call :meth:`record` with an undo callback for every write
    made while a transaction is open. Transactions nest: an inner abort
    only rolls back the writes made since that inner transaction began.
    """

    def __init__(self):
        self._entries: List[Callable[[], None]] = []
        self._depth = 0

    @property
    def active(self) -> bool:
        return self._depth > 0

    def record(self, undo: Callable[[], None]) -> None:
        if self._depth:
            self._entries.append(undo)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        mark = len(self._entries)
        self._depth += 1
        try:
            yield
        except BaseException:
            while len(self._entries) > mark:
                self._entries.pop()()
            raise
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._entries.clear()


class PoolState:
    """
    Accounting state owned by exactly one pool.

    Holds the commitment tree and the nullifier ledger, both wired to the
    same journal so that :meth:`atomic` can roll every write back together.
    """

    def __init__(
        self,
        hasher: Hasher,
        depth: int = CommitmentTree.DEFAULT_DEPTH,
        seed: str = CommitmentTree.DEFAULT_SEED,
    ):
        self.journal = Journal()
        self.tree = CommitmentTree(hasher=hasher, depth=depth, seed=seed, journal=self.journal)
        self.nullifiers = NullifierLedger(journal=self.journal)

    @contextmanager
    def atomic(self, *externals) -> Iterator[None]:
        """
        Run a block as one all-or-nothing step.

        Args:
            *externals: Transfer capabilities exposing ``snapshot()`` and
                ``restore(snapshot)``; their balances roll back with the state.
        """
        snapshots = [(external, external.snapshot()) for external in externals]
        try:
            with self.journal.transaction():
                yield
        except BaseException:
            for external, snapshot in reversed(snapshots):
                external.restore(snapshot)
            logger.warning("Pool operation aborted, state rolled back")
            raise

    def get_state(self) -> dict:
        state = self.tree.get_state()
        state["num_nullifiers"] = len(self.nullifiers)
        return state
