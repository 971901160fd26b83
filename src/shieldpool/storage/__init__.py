"""Storage layer for persistent data."""

from shieldpool.storage.database import (
    DatabaseManager,
    LedgerSnapshot,
    MerkleRoot,
    Base,
    get_db_manager,
    reset_db_manager,
)

__all__ = [
    "DatabaseManager",
    "LedgerSnapshot",
    "MerkleRoot",
    "Base",
    "get_db_manager",
    "reset_db_manager",
]
