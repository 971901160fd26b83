"""Commitment, nullifier and owner derivation."""

from dataclasses import dataclass

from shieldpool.crypto.hashing import FieldHasher
from shieldpool.exceptions import (
    InvalidCommitmentError,
    InvalidFieldElementError,
    InvalidNullifierError,
)
from shieldpool.utils.field import random_field_element, require_field

# Domain separator, first hash input (must match the circuit)
COMMITMENT_DOMAIN = 1


@dataclass(frozen=True)
class Balance:
    """The tuple a commitment binds to."""

    owner: int
    amount: int
    pool_id: int
    blinding: int


class CommitmentCodec:
    """
    Derives commitments, nullifiers and owner identifiers.

    Formulas:
        commitment = H(COMMITMENT_DOMAIN, owner, amount, pool_id, blinding)
        nullifier  = H(commitment, nullifier_secret, nonce)
        owner      = H(secret_key)

    The hash backend is injected so the codec stays bit-exact with whichever
    circuit hasher is configured.
    """

    def __init__(self, hasher: FieldHasher):
        self.hasher = hasher

    @staticmethod
    def generate_blinding() -> int:
        """
        Generate a random blinding factor.

        Returns:
            int: Uniformly random 256-bit value reduced into the field
        """
        return random_field_element()

    @staticmethod
    def generate_nullifier_secret() -> int:
        """Generate a random nullifier secret."""
        return random_field_element()

    def compute_commitment(self, owner: int, amount: int, pool_id: int, blinding: int) -> int:
        """
        Compute a balance commitment.

        Args:
            owner: Owner identifier (see derive_owner)
            amount: Committed value, non-negative
            pool_id: Pool / vault identifier
            blinding: Random blinding factor

        Returns:
            int: Commitment field element

        Raises:
            InvalidCommitmentError: If any input is not a field element
        """
        try:
            require_field(owner, "owner")
            require_field(amount, "amount")
            require_field(pool_id, "pool_id")
            require_field(blinding, "blinding")
        except InvalidFieldElementError as e:
            raise InvalidCommitmentError(str(e))

        return self.hasher.hash([COMMITMENT_DOMAIN, owner, amount, pool_id, blinding])

    def commit(self, balance: Balance) -> int:
        """Compute the commitment to a Balance."""
        return self.compute_commitment(
            balance.owner, balance.amount, balance.pool_id, balance.blinding
        )

    def compute_nullifier(self, commitment: int, secret: int, nonce: int) -> int:
        """
        Compute the nullifier revealed when spending a commitment.

        Successive spends of the same commitment slot must use increasing
        nonces, otherwise they collide on the same nullifier.

        Raises:
            InvalidNullifierError: If any input is not a field element
        """
        try:
            require_field(commitment, "commitment")
            require_field(secret, "secret")
            require_field(nonce, "nonce")
        except InvalidFieldElementError as e:
            raise InvalidNullifierError(str(e))

        return self.hasher.hash([commitment, secret, nonce])

    def derive_owner(self, secret_key: int) -> int:
        """
        Derive the owner identifier from a secret key (one-way).

        Raises:
            InvalidCommitmentError: If secret_key is not a field element
        """
        try:
            require_field(secret_key, "secret_key")
        except InvalidFieldElementError as e:
            raise InvalidCommitmentError(str(e))
        return self.hasher.hash([secret_key])

    def verify_commitment(
        self, owner: int, amount: int, pool_id: int, blinding: int, expected_commitment: int
    ) -> bool:
        """
        Verify that a commitment opens to the given tuple.

        Returns:
            bool: True if commitment is valid, False otherwise
        """
        try:
            return self.compute_commitment(owner, amount, pool_id, blinding) == expected_commitment
        except InvalidCommitmentError:
            return False
