"""Contracts for the external prover and ledger."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, runtime_checkable

from shieldpool.models.schemas import OperationKind


class CircuitId(str, Enum):
    """Circuits the prover knows how to execute."""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


@dataclass(frozen=True)
class ProofResult:
    """Opaque proof bytes plus the public inputs the prover committed to."""

    proof_bytes: bytes
    public_inputs: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class LedgerSubmission:
    """
    One shielded transaction as handed to the ledger.

    Deposits carry ``commitment`` and ``leaf_index``; withdrawals carry
    ``nullifier`` and ``recipient``.
    """

    kind: OperationKind
    proof: bytes
    old_root: int
    new_root: int
    amount: int
    public_inputs: List[bytes] = field(default_factory=list)
    commitment: Optional[int] = None
    nullifier: Optional[int] = None
    recipient: Optional[int] = None
    leaf_index: Optional[int] = None


@runtime_checkable
class Prover(Protocol):
    """Generates a proof for a named circuit. Any exception means failure."""

    def prove(self, circuit: CircuitId, inputs: dict) -> ProofResult:
        ...


@runtime_checkable
class LedgerClient(Protocol):
    """Submits a transaction and returns its id once confirmed."""

    def submit(self, submission: LedgerSubmission) -> str:
        ...
