"""
Circuit witnesses and Groth16 proof plumbing.

Witnesses carry the public and private inputs of one circuit execution and
render them into the nested decimal-string map the circuit ABI expects.
Proofs travel to the ledger as a flat 256-byte blob::

    a (G1, 64 bytes) || b (G2, 128 bytes) || c (G1, 64 bytes)
"""

from dataclasses import dataclass
from typing import List, Sequence, Union

from shieldpool.core.merkle_tree import MerkleProof
from shieldpool.utils.encoding import public_inputs_to_bytes32

G1_BYTES = 64
G2_BYTES = 128
PROOF_BYTES = 2 * G1_BYTES + G2_BYTES


@dataclass(frozen=True)
class DepositWitness:
    """Inputs of the deposit circuit."""

    # Public
    deposit_amount: int
    new_commitment: int
    leaf_index: int
    old_root: int
    new_root: int
    # Private
    owner: int
    pool_id: int
    blinding: int
    insertion_proof: MerkleProof

    def public_inputs(self) -> List[int]:
        return [
            self.deposit_amount,
            self.new_commitment,
            self.leaf_index,
            self.old_root,
            self.new_root,
        ]

    def to_circuit_inputs(self) -> dict:
        return {
            "deposit_amount": str(self.deposit_amount),
            "new_commitment": str(self.new_commitment),
            "leaf_index": str(self.leaf_index),
            "old_root": str(self.old_root),
            "new_root": str(self.new_root),
            "private_inputs": {
                "owner": str(self.owner),
                "vault_id": str(self.pool_id),
                "blinding": str(self.blinding),
                "insertion_proof": self.insertion_proof.to_circuit_format(),
            },
        }


@dataclass(frozen=True)
class WithdrawWitness:
    """
    Inputs of the withdraw circuit.

    ``new_balance_proof`` is the sibling path of ``new_balance_leaf_index``;
    with the change written back into the source slot both refer to the same
    slot as ``merkle_proof``.
    """

    # Public
    amount: int
    recipient: int
    nullifier: int
    old_root: int
    new_root: int
    # Private
    owner: int
    balance: int
    pool_id: int
    blinding: int
    merkle_proof: MerkleProof
    leaf_index: int
    nullifier_secret: int
    nonce: int
    new_balance_blinding: int
    new_balance_leaf_index: int
    new_balance_proof: MerkleProof

    def public_inputs(self) -> List[int]:
        return [self.amount, self.recipient, self.nullifier, self.old_root, self.new_root]

    def to_circuit_inputs(self) -> dict:
        return {
            "amount": str(self.amount),
            "recipient": str(self.recipient),
            "nullifier": str(self.nullifier),
            "old_root": str(self.old_root),
            "new_root": str(self.new_root),
            "private_inputs": {
                "owner": str(self.owner),
                "balance": str(self.balance),
                "vault_id": str(self.pool_id),
                "blinding": str(self.blinding),
                "merkle_proof": self.merkle_proof.to_circuit_format(),
                "leaf_index": str(self.leaf_index),
                "nullifier_secret": str(self.nullifier_secret),
                "nonce": str(self.nonce),
                "new_balance_blinding": str(self.new_balance_blinding),
                "new_balance_leaf_index": str(self.new_balance_leaf_index),
                "new_balance_proof": self.new_balance_proof.to_circuit_format(),
            },
        }


@dataclass(frozen=True)
class Groth16Proof:
    """Groth16 proof split into its curve points."""

    a: bytes
    b: bytes
    c: bytes

    def __post_init__(self):
        if len(self.a) != G1_BYTES or len(self.c) != G1_BYTES:
            raise ValueError(f"G1 points must be {G1_BYTES} bytes")
        if len(self.b) != G2_BYTES:
            raise ValueError(f"G2 point must be {G2_BYTES} bytes")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Groth16Proof":
        """
        Split a flat proof blob.

        Raises:
            ValueError: If data is not exactly 256 bytes
        """
        if len(data) != PROOF_BYTES:
            raise ValueError(f"Expected {PROOF_BYTES} bytes, got {len(data)}")
        return cls(
            a=bytes(data[:G1_BYTES]),
            b=bytes(data[G1_BYTES:G1_BYTES + G2_BYTES]),
            c=bytes(data[G1_BYTES + G2_BYTES:]),
        )

    def to_bytes(self) -> bytes:
        return self.a + self.b + self.c


def format_public_inputs(public_inputs: Sequence[Union[str, int]]) -> List[bytes]:
    """Public inputs as 32-byte big-endian values for ledger verification."""
    return public_inputs_to_bytes32(public_inputs)
