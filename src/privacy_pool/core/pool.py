"""Privacy pool: deposit and withdraw entry points of one pool instance.

Deposit flow:
    1. Depositor pays exactly ``n * denomination``
    2. commitment = H(raw_commitment, asset_metadata) for every raw commitment
    3. Commitments appended to the deposit tree
    4. One ``DepositEvent`` per commitment

Withdrawal flow:
    1. Relayer submits a proof and a fee receiver
    2. ``WithdrawalEngine`` runs its gates and settles
    3. ``WithdrawalEvent`` published

Every entry point is all-or-nothing. Listeners only see events of operations
that committed.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence, Union

from privacy_pool.core.commitment import Commitment
from privacy_pool.core.events import DepositEvent, WithdrawalEvent
from privacy_pool.core.merkle_tree import Hasher, MerklePath, MerkleTree
from privacy_pool.core.state import PoolState
from privacy_pool.core.transfer import AssetTransfer, Bank, BankTransfer
from privacy_pool.core.withdrawal import WithdrawalEngine, WithdrawalProof, WithdrawRequest
from privacy_pool.crypto.groth16 import ProofVerifier
from privacy_pool.crypto.poseidon import poseidon
from privacy_pool.exceptions import (
    DenominationInvalid,
    FieldElementInvalid,
    InputError,
    MerkleTreeCapacity,
    MsgValueInvalid,
    ZeroAddress,
)
from privacy_pool.utils.encoding import NATIVE_ASSET, field_to_hex, is_zero_address, normalize_address
from privacy_pool.utils.hash import SNARK_SCALAR_FIELD, asset_metadata

logger = logging.getLogger(__name__)

PoolEvent = Union[DepositEvent, WithdrawalEvent]
Listener = Callable[["PrivacyPool", PoolEvent], None]


class PrivacyPool:
    """
    Fixed-denomination pool for one asset.

    Composes the deposit tree, the nullifier ledger and the withdrawal engine
    over a single :class:`PoolState`, and moves funds only through the
    transfer capabilities it is given.
    """

    def __init__(
        self,
        hasher: Optional[Hasher],
        asset: str,
        denomination: int,
        verifier: ProofVerifier,
        transfer: AssetTransfer,
        native_transfer: Optional[AssetTransfer] = None,
        depth: int = MerkleTree.DEFAULT_DEPTH,
        seed: str = MerkleTree.DEFAULT_SEED,
        clock: Callable[[], float] = time.time,
        address: Optional[str] = None,
    ):
        """
        Initialize an empty pool.

        Args:
            hasher: Circuit hash used for the tree and commitments
            asset: Asset address, ``NATIVE_ASSET`` for the native coin
            denomination: Amount of every deposit and withdrawal
            verifier: Proof-verification oracle
            transfer: Capability moving the pool asset
            native_transfer: Capability moving native coin; required for
                token pools, which forward refunds in native coin
            depth: Deposit tree depth
            seed: Domain seed of the deposit tree's empty leaf
            clock: Source of the current unix time
            address: Address the pool holds funds under

        Raises:
            ZeroAddress: If the hasher or asset is missing
            DenominationInvalid: If the denomination is not positive
        """
        if hasher is None:
            raise ZeroAddress("Hasher is not set")
        if is_zero_address(asset):
            raise ZeroAddress("Asset is the zero address")
        if denomination <= 0:
            raise DenominationInvalid(f"Invalid denomination: {denomination}")

        self.asset = normalize_address(asset)
        self.denomination = denomination
        self.is_native = self.asset == NATIVE_ASSET
        if native_transfer is None:
            if not self.is_native:
                raise ValueError("Token pools need a native transfer capability for refunds")
            native_transfer = transfer

        self.hasher = hasher
        self.verifier = verifier
        self.transfer = transfer
        self.native_transfer = native_transfer
        self.address = normalize_address(address) if address else getattr(transfer, "pool_address", None)
        self.asset_metadata = asset_metadata(self.asset, denomination)

        self.state = PoolState(hasher, depth=depth, seed=seed)
        self.engine = WithdrawalEngine(
            state=self.state,
            verifier=verifier,
            asset_metadata=self.asset_metadata,
            denomination=denomination,
            transfer=transfer,
            native_transfer=native_transfer,
            is_native=self.is_native,
            clock=clock,
        )

        self.events: List[PoolEvent] = []
        self._pending: List[PoolEvent] = []
        self._listeners: List[Listener] = []

    @classmethod
    def with_bank(
        cls,
        bank: Bank,
        asset: str,
        denomination: int,
        verifier: ProofVerifier,
        address: str,
        hasher: Optional[Hasher] = poseidon,
        **kwargs,
    ) -> "PrivacyPool":
        """Create a pool that holds its funds at ``address`` in an in-memory bank."""
        return cls(
            hasher=hasher,
            asset=asset,
            denomination=denomination,
            verifier=verifier,
            transfer=BankTransfer(bank, asset, address),
            native_transfer=BankTransfer(bank, NATIVE_ASSET, address),
            address=address,
            **kwargs,
        )

    # -- plumbing -------------------------------------------------------------

    @property
    def tree(self):
        return self.state.tree

    @property
    def _externals(self) -> List[AssetTransfer]:
        if self.native_transfer is self.transfer:
            return [self.transfer]
        return [self.transfer, self.native_transfer]

    @contextmanager
    def _operation(self) -> Iterator[None]:
        mark = len(self._pending)
        try:
            with self.state.atomic(*self._externals):
                yield
        except BaseException:
            del self._pending[mark:]
            raise

        # nested calls (a receive hook re-entering the pool) publish with the outermost one
        if not self.state.journal.active:
            self._publish()

    def _publish(self) -> None:
        pending, self._pending = self._pending, []
        for event in pending:
            self.events.append(event)
            for listener in list(self._listeners):
                listener(self, event)

    def subscribe(self, listener: Listener) -> None:
        """Call ``listener(pool, event)`` for every committed event."""
        self._listeners.append(listener)

    # -- entry points -----------------------------------------------------------

    def deposit(self, sender: str, raw_commitment: int, value: int = 0) -> DepositEvent:
        """
        Deposit one denomination behind a raw commitment.

        Args:
            sender: Depositor address
            raw_commitment: H(secret), chosen by the depositor
            value: Native value attached; must equal the denomination on
                native pools and be zero on token pools

        Returns:
            DepositEvent: Record of the inserted commitment

        Raises:
            MsgValueInvalid: If the attached value is wrong
            FieldElementInvalid: If the raw commitment is not a field element
            MerkleTreeCapacity: If the deposit tree is full
        """
        return self.deposit_many(sender, [raw_commitment], value)[0]

    def deposit_many(self, sender: str, raw_commitments: Sequence[int], value: int = 0) -> List[DepositEvent]:
        """
        Deposit several notes under one payment of ``len(raw_commitments) * denomination``.

        Returns:
            List[DepositEvent]: One record per inserted commitment, in index order
        """
        count = len(raw_commitments)
        if count == 0:
            raise InputError("No commitments to deposit")

        total = count * self.denomination
        expected_value = total if self.is_native else 0
        if value != expected_value:
            raise MsgValueInvalid(f"Attached value {value}, expected {expected_value}")

        for raw in raw_commitments:
            if not isinstance(raw, int) or not 0 <= raw < SNARK_SCALAR_FIELD:
                raise FieldElementInvalid(f"Raw commitment is not a field element: {raw!r}")

        tree = self.state.tree
        if tree.next_index + count > tree.capacity:
            raise MerkleTreeCapacity(f"Cannot deposit {count} notes: {tree.capacity - tree.next_index} slots left")

        events = []
        with self._operation():
            self.transfer.pull(sender, total)
            commitments = [
                Commitment.compute_commitment(raw, self.asset_metadata, self.hasher) for raw in raw_commitments
            ]
            indices = tree.insert_many(commitments)
            for raw, commitment, index in zip(raw_commitments, commitments, indices):
                event = DepositEvent(
                    raw_commitment=raw,
                    commitment=commitment,
                    asset=self.asset,
                    denomination=self.denomination,
                    index=index,
                )
                events.append(event)
                self._pending.append(event)

        logger.info(
            "Deposited %d note(s) at index %d, root %s",
            count,
            events[0].index,
            field_to_hex(tree.root)[:18],
        )
        return events

    def withdraw(self, caller: str, request: WithdrawRequest, value: int = 0) -> WithdrawalEvent:
        """
        Withdraw one denomination with a zero-knowledge proof.

        Args:
            caller: Address submitting the call (must be the proof's relayer)
            request: Proof plus fee receiver
            value: Native value attached (the refund on token pools)

        Returns:
            WithdrawalEvent: Record of the settled withdrawal

        Raises:
            PrivacyPoolError: Whichever gate fails first, or FailedInnerCall
                if a payout is rejected; nothing is changed in either case
        """
        with self._operation():
            event = self.engine.process(caller, request, value)
            self._pending.append(event)

        logger.info(
            "Withdrawal settled: nullifier %s, fee %d",
            field_to_hex(event.nullifier)[:18],
            event.fee,
        )
        return event

    def verify_withdrawal(self, proof: WithdrawalProof) -> bool:
        """
        Check only the proof, without touching state.

        Raises:
            InvalidZKProof: If the proof does not verify
        """
        return self.engine.verify_proof(proof)

    # -- read-only accessors ---------------------------------------------------

    def latest_root(self) -> int:
        return self.state.tree.root

    def is_known_root(self, root: int) -> bool:
        return self.state.tree.is_known_root(root)

    def is_spent(self, nullifier: int) -> bool:
        return self.state.nullifiers.is_spent(nullifier)

    def path_of(self, index: int) -> MerklePath:
        return self.state.tree.path_of(index)

    def get_state(self) -> dict:
        """
        Get the current pool state.

        Returns:
            dict: Pool parameters plus tree and ledger statistics
        """
        state = {
            "address": self.address,
            "asset": self.asset,
            "denomination": self.denomination,
            "asset_metadata": field_to_hex(self.asset_metadata),
        }
        state.update(self.state.get_state())
        return state

    def __repr__(self) -> str:
        return f"PrivacyPool(asset={self.asset}, denomination={self.denomination}, deposits={len(self.state.tree)})"
