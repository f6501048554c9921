"""Nullifier ledger: the double-spend guard of a pool.

A nullifier is ``H(secret, 1, leaf_index)``. It is revealed once, when the
note is withdrawn, and recorded here forever. It cannot be linked back to the
commitment without the secret, but a second withdrawal of the same note
necessarily reveals the same nullifier and is rejected.

Warning:
    Nullifier uniqueness is what keeps pool funds from being drained.
    The ledger only grows; there is no way to un-spend outside the undo
    journal of an aborted operation.
"""

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Dict, Optional

from privacy_pool.exceptions import NoteAlreadySpent
from privacy_pool.utils.encoding import field_to_hex

if TYPE_CHECKING:
    from privacy_pool.core.state import Journal


@dataclass
class NullifierRecord:
    """
    Record of a spent nullifier.

    Tracks when and against which root a nullifier was used.
    """

    nullifier: int
    spent_at: str
    root: Optional[int] = None
    relayer: Optional[str] = None

    def serialize(self) -> str:
        """Serialize to JSON."""
        data = asdict(self)
        data["nullifier"] = field_to_hex(self.nullifier)
        data["root"] = field_to_hex(self.root) if self.root is not None else None
        return json.dumps(data)


class NullifierLedger:
    """
    Maintains the set of spent nullifiers.

    Key properties:
      - Nullifiers are independent of commitments
      - Publicly observable (anyone can ask whether a nullifier is spent)
      - Grows over time, never shrinks
    """

    def __init__(self, journal: Optional["Journal"] = None):
        """Initialize empty ledger."""
        self.records: Dict[int, NullifierRecord] = {}
        self.journal = journal

    def spend(self, nullifier: int, root: Optional[int] = None, relayer: Optional[str] = None) -> NullifierRecord:
        """
        Mark a nullifier as spent.

        Args:
            nullifier: The nullifier revealed by the withdrawal
            root: Deposit root the withdrawal proved against
            relayer: Relayer that submitted the withdrawal

        Returns:
            NullifierRecord: The new record

        Raises:
            NoteAlreadySpent: If the nullifier was spent before
        """
        if self.is_spent(nullifier):
            raise NoteAlreadySpent(f"Nullifier {field_to_hex(nullifier)} already spent")

        record = NullifierRecord(
            nullifier=nullifier,
            spent_at=datetime.now(UTC).isoformat(),
            root=root,
            relayer=relayer,
        )
        self.records[nullifier] = record
        if self.journal is not None:
            self.journal.record(lambda: self.records.pop(nullifier, None))
        return record

    def is_spent(self, nullifier: int) -> bool:
        """Check if a nullifier has been spent."""
        return nullifier in self.records

    def get_record(self, nullifier: int) -> Optional[NullifierRecord]:
        """Get spending record for a nullifier."""
        return self.records.get(nullifier)

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, nullifier: int) -> bool:
        return self.is_spent(nullifier)
