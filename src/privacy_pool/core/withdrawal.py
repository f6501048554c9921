"""Withdrawal validation and settlement.

A withdrawal moves through ``RECEIVED -> VALIDATED -> PROOF_CHECKED ->
SETTLED`` and is ``ABORTED`` by the first gate that fails:

    1. deadline not passed (0 means no deadline)
    2. recipient is not the zero address
    3. fee does not exceed the denomination
    4. attached native value matches the refund rule of the pool
    5. caller is the relayer bound into the proof
    6. root is a known deposit-tree root
    7. nullifier is unspent
    8. verifier accepts the proof for the public signals

Settlement marks the nullifier spent before any funds leave the pool, so a
recipient that calls back into ``withdraw`` from its receive hook runs into
gate 7. The caller wraps the whole call in ``PoolState.atomic`` so that any
failure during settlement also un-spends the nullifier.
"""

import enum
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, List, Optional, Tuple

from privacy_pool.core.events import WithdrawalEvent
from privacy_pool.core.state import PoolState
from privacy_pool.core.transfer import AssetTransfer
from privacy_pool.crypto.groth16 import ProofVerifier
from privacy_pool.exceptions import (
    CallExpired,
    FeeExceedsDenomination,
    InvalidZKProof,
    MsgValueInvalid,
    NoteAlreadySpent,
    PrivacyPoolError,
    RelayerMismatch,
    UnknownRoot,
    ZeroAddress,
)
from privacy_pool.utils.encoding import bytes_to_hex, ensure_bytes, field_to_hex, is_zero_address, normalize_address
from privacy_pool.utils.hash import withdraw_metadata

logger = logging.getLogger(__name__)


class WithdrawalState(enum.Enum):
    """Stages of one withdrawal."""

    RECEIVED = "received"
    VALIDATED = "validated"
    PROOF_CHECKED = "proof_checked"
    SETTLED = "settled"
    ABORTED = "aborted"


@dataclass(frozen=True)
class WithdrawalProof:
    """
    Public part of a withdrawal.

    ``flat_proof`` is the opaque proof blob; every other field is either a
    public signal of the circuit or committed to by ``withdraw_metadata``.
    Addresses are normalized to lowercase on construction.
    """

    access_type: int
    bit_length: int
    subset_data: bytes
    flat_proof: Tuple[int, ...]
    root: int
    subset_root: int
    nullifier: int
    recipient: str
    refund: int
    relayer: str
    fee: int
    deadline: int = 0

    def __post_init__(self):
        object.__setattr__(self, "recipient", normalize_address(self.recipient))
        object.__setattr__(self, "relayer", normalize_address(self.relayer))
        object.__setattr__(self, "subset_data", ensure_bytes(self.subset_data))
        object.__setattr__(self, "flat_proof", tuple(int(x) for x in self.flat_proof))

    @property
    def withdraw_metadata(self) -> int:
        """Hash of every caller-chosen field, the last public signal."""
        return withdraw_metadata(
            self.recipient,
            self.refund,
            self.relayer,
            self.fee,
            self.deadline,
            self.access_type,
            self.bit_length,
            self.subset_data,
        )

    def public_signals(self, asset_metadata: int) -> Tuple[int, int, int, int, int]:
        """
        Assemble the public-signal vector in circuit order.

        Returns:
            tuple: (root, subset_root, nullifier, asset_metadata, withdraw_metadata)
        """
        return (self.root, self.subset_root, self.nullifier, asset_metadata, self.withdraw_metadata)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        data = asdict(self)
        data["subset_data"] = bytes_to_hex(self.subset_data)
        data["flat_proof"] = [str(x) for x in self.flat_proof]
        for name in ("root", "subset_root", "nullifier"):
            data[name] = field_to_hex(data[name])
        return data


@dataclass(frozen=True)
class WithdrawRequest:
    """A proof plus the address that collects the relayer fee (zero waives it)."""

    proof: WithdrawalProof
    fee_receiver: str

    def __post_init__(self):
        object.__setattr__(self, "fee_receiver", normalize_address(self.fee_receiver))


@dataclass
class WithdrawalContext:
    """Progress of one withdrawal through the gates."""

    caller: str
    request: WithdrawRequest
    value: int
    state: WithdrawalState = WithdrawalState.RECEIVED
    history: List[WithdrawalState] = field(default_factory=lambda: [WithdrawalState.RECEIVED])

    def advance(self, state: WithdrawalState) -> None:
        logger.debug(
            "Withdrawal %s: %s -> %s",
            field_to_hex(self.request.proof.nullifier)[:18],
            self.state.name,
            state.name,
        )
        self.state = state
        self.history.append(state)


class WithdrawalEngine:
    """
    Validates withdrawals against one pool's state and settles them.

    The engine owns no state of its own: the tree and nullifier ledger live in
    the :class:`PoolState` it is given, and funds move through the pool's
    transfer capabilities.
    """

    def __init__(
        self,
        state: PoolState,
        verifier: ProofVerifier,
        asset_metadata: int,
        denomination: int,
        transfer: AssetTransfer,
        native_transfer: Optional[AssetTransfer] = None,
        is_native: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            state: Pool state holding the commitment tree and nullifier ledger
            verifier: Proof-verification oracle
            asset_metadata: Public signal binding proofs to this pool
            denomination: Amount paid out per withdrawal
            transfer: Capability moving the pool asset
            native_transfer: Capability moving native coin, used for refunds
                on token pools
            is_native: Whether the pool asset is the native coin
            clock: Source of the current unix time
        """
        self.state = state
        self.verifier = verifier
        self.asset_metadata = asset_metadata
        self.denomination = denomination
        self.transfer = transfer
        self.native_transfer = native_transfer
        self.is_native = is_native
        self.clock = clock

    # -- gates -------------------------------------------------------------

    def check_deadline(self, proof: WithdrawalProof) -> None:
        if proof.deadline != 0 and int(self.clock()) > proof.deadline:
            raise CallExpired(f"Withdrawal deadline {proof.deadline} has passed")

    def check_recipient(self, proof: WithdrawalProof) -> None:
        if is_zero_address(proof.recipient):
            raise ZeroAddress("Recipient is the zero address")

    def check_fee(self, proof: WithdrawalProof) -> None:
        if proof.fee > self.denomination:
            raise FeeExceedsDenomination(f"Fee {proof.fee} exceeds denomination {self.denomination}")

    def check_value(self, proof: WithdrawalProof, value: int) -> None:
        """
        Token pools forward the attached native value as the refund, so it must
        equal the refund exactly. Native pools pay from their own balance and
        accept neither a refund nor attached value.
        """
        if self.is_native:
            valid = proof.refund == 0 and value == 0
        else:
            valid = value == proof.refund
        if not valid:
            raise MsgValueInvalid(f"Attached value {value} does not match refund {proof.refund}")

    def check_relayer(self, proof: WithdrawalProof, caller: str) -> None:
        # a zero relayer lets anyone submit the withdrawal
        if is_zero_address(proof.relayer):
            return
        if normalize_address(caller) != proof.relayer:
            raise RelayerMismatch(f"Caller {caller} is not the relayer {proof.relayer}")

    def check_root(self, proof: WithdrawalProof) -> None:
        if not self.state.tree.is_known_root(proof.root):
            raise UnknownRoot(f"Unknown root {field_to_hex(proof.root)}")

    def check_nullifier(self, proof: WithdrawalProof) -> None:
        if self.state.nullifiers.is_spent(proof.nullifier):
            raise NoteAlreadySpent(f"Nullifier {field_to_hex(proof.nullifier)} already spent")

    def verify_proof(self, proof: WithdrawalProof) -> bool:
        """
        Check the proof against its public signals.

        Raises:
            InvalidZKProof: If the verifier rejects the proof or the fields
                cannot be encoded into public signals
        """
        try:
            signals = proof.public_signals(self.asset_metadata)
        except ValueError as e:
            raise InvalidZKProof(f"Withdrawal fields cannot be encoded: {e}") from e

        if not self.verifier.verify(signals, proof.flat_proof):
            raise InvalidZKProof("Proof verification failed")
        return True

    # -- processing ----------------------------------------------------------

    def process(self, caller: str, request: WithdrawRequest, value: int = 0) -> WithdrawalEvent:
        """
        Run every gate and settle the withdrawal.

        Must be called inside ``PoolState.atomic`` covering the transfer
        capabilities; this method does not roll anything back itself.

        Args:
            caller: Address submitting the withdrawal
            request: Proof and fee receiver
            value: Native value attached to the call

        Returns:
            WithdrawalEvent: Record of the settled withdrawal

        Raises:
            PrivacyPoolError: The first gate that fails, or FailedInnerCall
                if a transfer fails during settlement
        """
        context = WithdrawalContext(caller=caller, request=request, value=value)
        proof = request.proof
        try:
            self.check_deadline(proof)
            self.check_recipient(proof)
            self.check_fee(proof)
            self.check_value(proof, value)
            self.check_relayer(proof, caller)
            self.check_root(proof)
            self.check_nullifier(proof)
            context.advance(WithdrawalState.VALIDATED)

            self.verify_proof(proof)
            context.advance(WithdrawalState.PROOF_CHECKED)

            event = self.settle(context)
            context.advance(WithdrawalState.SETTLED)
        except PrivacyPoolError as e:
            logger.warning("Withdrawal aborted after %s: %s", context.state.name, e.code)
            context.advance(WithdrawalState.ABORTED)
            raise

        return event

    def settle(self, context: WithdrawalContext) -> WithdrawalEvent:
        """Spend the nullifier, then pay out fee, remainder and refund.

        On token pools the refund is the native value the caller attached,
        passed straight through to the recipient.
        """
        proof = context.request.proof
        fee_receiver = context.request.fee_receiver

        self.state.nullifiers.spend(proof.nullifier, root=proof.root, relayer=proof.relayer)

        if is_zero_address(fee_receiver):
            self.transfer.push(proof.recipient, self.denomination)
        else:
            self.transfer.push(fee_receiver, proof.fee)
            self.transfer.push(proof.recipient, self.denomination - proof.fee)

        if not self.is_native and proof.refund:
            self.native_transfer.pull(context.caller, context.value)
            self.native_transfer.push(proof.recipient, proof.refund)

        return WithdrawalEvent(
            recipient=proof.recipient,
            relayer=proof.relayer,
            subset_root=proof.subset_root,
            nullifier=proof.nullifier,
            fee=proof.fee,
        )
