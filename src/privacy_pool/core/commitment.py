"""Commitment and nullifier derivation for pool notes."""

import secrets
from dataclasses import dataclass
from typing import Optional

from privacy_pool.core.merkle_tree import Hasher
from privacy_pool.crypto.poseidon import poseidon
from privacy_pool.utils.hash import NULLIFIER_DOMAIN, SNARK_SCALAR_FIELD, asset_metadata


@dataclass(frozen=True)
class Note:
    """
    A depositor's private note.

    Only ``raw_commitment`` is sent to the pool; the pool derives
    ``commitment`` itself from the asset metadata of the pool.
    """

    secret: int
    raw_commitment: int
    commitment: int
    asset_metadata: int

    def nullifier(self, leaf_index: int, hasher: Hasher = poseidon) -> int:
        """Nullifier revealed when withdrawing this note from ``leaf_index``."""
        return Commitment.compute_nullifier(self.secret, leaf_index, hasher)


class Commitment:
    """Commitment and nullifier generation."""

    @staticmethod
    def generate_secret() -> int:
        """
        Generate a random secret.

        Returns:
            int: Uniform field element from a CSPRNG
        """
        return secrets.randbelow(SNARK_SCALAR_FIELD)

    @staticmethod
    def compute_raw_commitment(secret: int, hasher: Hasher = poseidon) -> int:
        """raw_commitment = H(secret)."""
        return hasher(secret)

    @staticmethod
    def compute_commitment(raw_commitment: int, metadata: int, hasher: Hasher = poseidon) -> int:
        """
        Bind a raw commitment to one pool.

        commitment = H(raw_commitment, asset_metadata), so a note deposited in
        one pool cannot be replayed as a leaf of another pool's tree.
        """
        return hasher(raw_commitment, metadata)

    @staticmethod
    def compute_nullifier(secret: int, leaf_index: int, hasher: Hasher = poseidon) -> int:
        """nullifier = H(secret, 1, leaf_index)."""
        return hasher(secret, NULLIFIER_DOMAIN, leaf_index)

    @staticmethod
    def create_note(
        asset: str,
        denomination: int,
        secret: Optional[int] = None,
        hasher: Hasher = poseidon,
    ) -> Note:
        """
        Create a complete note for a pool.

        Args:
            asset: Pool asset address
            denomination: Pool denomination
            secret: Existing secret, or None to draw a fresh one
            hasher: Circuit hash

        Returns:
            Note: Secret plus derived commitments
        """
        if secret is None:
            secret = Commitment.generate_secret()
        metadata = asset_metadata(asset, denomination)
        raw_commitment = Commitment.compute_raw_commitment(secret, hasher)
        return Note(
            secret=secret,
            raw_commitment=raw_commitment,
            commitment=Commitment.compute_commitment(raw_commitment, metadata, hasher),
            asset_metadata=metadata,
        )
