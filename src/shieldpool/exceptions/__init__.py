"""Custom exceptions for the shielded pool client."""


class ShieldedPoolError(Exception):
    """Base exception for all shielded pool errors."""
    pass


# Validation Errors
class ValidationError(ShieldedPoolError):
    """Base exception for bad caller input. Raised before any side effect."""
    pass


class InvalidFieldElementError(ValidationError):
    """Raised when a value is not a canonical field element."""
    pass


class InvalidAmountError(ValidationError):
    """Raised when an amount is zero, negative or too large."""
    pass


class OutOfRangeError(ValidationError):
    """Raised when a leaf index is outside the populated tree."""
    pass


class TreeFullError(ValidationError):
    """Raised when the accumulator has no free leaf slot left."""
    pass


class MultiInputUnsupportedError(ValidationError):
    """Raised when a withdrawal would need more than one source commitment."""
    pass


class InsufficientBalanceError(ValidationError):
    """Raised when unspent balance is below the requested amount."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient balance. Required: {required}, Available: {available}"
        )


class CommitmentNotFoundError(ValidationError):
    """Raised when a commitment is not tracked by the local ledger."""
    pass


# Cryptography Errors
class CryptoError(ShieldedPoolError):
    """Base exception for cryptographic errors."""
    pass


class InvalidCommitmentError(CryptoError):
    """Raised when commitment inputs are invalid."""
    pass


class InvalidNullifierError(CryptoError):
    """Raised when nullifier inputs are invalid."""
    pass


# External Service Errors
class ExternalServiceError(ShieldedPoolError):
    """Base exception for Prover/Ledger failures. Safe to retry from scratch."""
    pass


class ProofGenerationFailedError(ExternalServiceError):
    """Raised when the prover fails to produce a proof."""
    pass


class LedgerSubmissionFailedError(ExternalServiceError):
    """Raised when the ledger rejects or fails to confirm a transaction."""
    pass


# Consistency Errors
class ConsistencyError(ShieldedPoolError):
    """Base exception for tree/ledger inconsistencies. Fatal to the operation."""
    pass


class StateCorruptionError(ConsistencyError):
    """Raised when imported or restored state does not match its root."""
    pass


class NullifierReuseError(ConsistencyError):
    """Raised when a nullifier would be revealed a second time."""
    pass


class StaleAttemptError(ConsistencyError):
    """Raised when the tree moved while an operation was waiting on an external call."""
    pass


# Client Errors
class OperationInProgressError(ShieldedPoolError):
    """Raised when a second mutation is started while one is in flight."""
    pass


class ConfigurationError(ShieldedPoolError):
    """Raised when settings are invalid or a component is not initialized."""
    pass


# Storage Errors
class StorageError(ShieldedPoolError):
    """Base exception for storage errors."""
    pass
