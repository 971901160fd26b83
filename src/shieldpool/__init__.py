"""Main package initialization."""

__version__ = "0.1.0"
__author__ = "Shielded Pool Team"
__description__ = "Client engine for a shielded value pool: commitments, nullifiers and a Merkle accumulator"

from .core.merkle_tree import MerkleAccumulator, MerkleProof
from .core.commitment import CommitmentCodec, Balance
from .core.ledger import CoinLedger, CommitmentRecord
from .core.orchestrator import TransactionOrchestrator
from .core.wallet import ShieldedWallet
from .client import ShieldedPoolClient

__all__ = [
    "MerkleAccumulator",
    "MerkleProof",
    "CommitmentCodec",
    "Balance",
    "CoinLedger",
    "CommitmentRecord",
    "TransactionOrchestrator",
    "ShieldedWallet",
    "ShieldedPoolClient",
]
