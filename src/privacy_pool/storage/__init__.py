"""Storage layer for persistent data."""

from privacy_pool.storage.database import (
    DatabaseManager,
    DepositRecord,
    WithdrawalRecord,
    MerkleRoot,
    Base,
    get_db_manager,
    reset_db_manager,
)

__all__ = [
    "DatabaseManager",
    "DepositRecord",
    "WithdrawalRecord",
    "MerkleRoot",
    "Base",
    "get_db_manager",
    "reset_db_manager",
]
