"""Main package initialization."""

__version__ = "0.1.0"
__author__ = "Privacy Pool Team"
__description__ = "Fixed-denomination privacy pools with compliance subsets"

from .core.merkle_tree import MerkleTree, CommitmentTree, MerklePath
from .core.access_list import SubsetTree, AccessType
from .core.nullifier import NullifierLedger
from .core.commitment import Commitment, Note
from .core.withdrawal import WithdrawalEngine, WithdrawalProof, WithdrawRequest
from .core.transfer import Bank, BankTransfer, AssetTransfer
from .core.pool import PrivacyPool
from .core.registry import PoolRegistry

__all__ = [
    "MerkleTree",
    "CommitmentTree",
    "MerklePath",
    "SubsetTree",
    "AccessType",
    "NullifierLedger",
    "Commitment",
    "Note",
    "WithdrawalEngine",
    "WithdrawalProof",
    "WithdrawRequest",
    "Bank",
    "BankTransfer",
    "AssetTransfer",
    "PrivacyPool",
    "PoolRegistry",
]
