"""Transaction orchestrator: build, prove, submit and confirm shielded operations.

Sequences the commitment codec, the accumulator and the coin ledger around the
two blocking external calls (prover and ledger).

Deposit:
    BuildCommitment -> InsertLeaf -> AssembleWitness -> RequestProof
    -> SubmitLedgerTx -> RecordLocalState -> Done

Withdraw:
    SelectCommitments -> DeriveNullifier -> ComputeChangeCommitment
    -> UpdateTreeLeaf -> AssembleWitness -> RequestProof -> SubmitLedgerTx
    -> MarkSpentLocally -> RecordChangeCommitment -> Done

Key Invariants:
    - Tree and ledger are only mutated after the ledger confirms the
      transaction. Leaf indices and roots used in the witness come from
      preview_insert / preview_update against an unmodified tree.
    - A failed proof or submission leaves local state untouched. A retry is a
      new attempt with fresh randomness and re-read leaf indices.
    - A nullifier reveal is registered before submission, so every attempt
      against the same slot uses a new nonce.
    - Before committing, the tree must still match the attempt's snapshot
      (leaf count and root), otherwise StaleAttemptError.
    - Exactly one source commitment per withdrawal.

The orchestrator performs no locking; callers must run one mutation at a time
(see ShieldedPoolClient).
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from shieldpool.core.collaborators import (
    CircuitId,
    LedgerClient,
    LedgerSubmission,
    ProofResult,
    Prover,
)
from shieldpool.core.ledger import CoinLedger, CommitmentRecord
from shieldpool.core.merkle_tree import MerkleAccumulator
from shieldpool.core.witness import DepositWitness, Groth16Proof, WithdrawWitness, format_public_inputs
from shieldpool.exceptions import (
    InvalidAmountError,
    LedgerSubmissionFailedError,
    MultiInputUnsupportedError,
    NullifierReuseError,
    ProofGenerationFailedError,
    StaleAttemptError,
    StateCorruptionError,
)
from shieldpool.models.schemas import DepositReceipt, OperationKind, WithdrawalReceipt
from shieldpool.utils.encoding import bytes_to_field
from shieldpool.utils.field import FIELD_MODULUS, require_field, short, to_hex64

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _TreeSnapshot:
    leaf_count: int
    root: int


class TransactionOrchestrator:
    """
    Runs deposits and withdrawals against one ledger.

    Example:
        >>> orchestrator = TransactionOrchestrator(ledger, prover, ledger_client)
        >>> receipt = orchestrator.deposit(owner, 1000)
        >>> orchestrator.withdraw(400, recipient)
    """

    def __init__(
        self,
        ledger: CoinLedger,
        prover: Prover,
        ledger_client: LedgerClient,
        pool_id: int = 0,
    ):
        self.ledger = ledger
        self.codec = ledger.codec
        self.prover = prover
        self.ledger_client = ledger_client
        self.pool_id = require_field(pool_id, "pool_id")

    @property
    def tree(self) -> MerkleAccumulator:
        return self.ledger.tree

    def deposit(self, owner: int, amount: int) -> DepositReceipt:
        """
        Shield ``amount`` for ``owner``.

        Args:
            owner: Owner identifier (CommitmentCodec.derive_owner)
            amount: Positive amount to deposit

        Returns:
            DepositReceipt: Transaction id, commitment, slot and roots

        Raises:
            InvalidAmountError: If amount is not a positive field-sized integer
            TreeFullError: If the tree has no free slot
            ProofGenerationFailedError: If the prover fails
            LedgerSubmissionFailedError: If the ledger rejects the transaction
            StaleAttemptError: If the tree moved while waiting on the ledger
        """
        self._require_amount(amount)
        require_field(owner, "owner")

        self._step("deposit", "BuildCommitment")
        blinding = self.codec.generate_blinding()
        nullifier_secret = self.codec.generate_nullifier_secret()
        commitment = self.codec.compute_commitment(owner, amount, self.pool_id, blinding)

        self._step("deposit", "InsertLeaf")
        snapshot = self._snapshot()
        preview = self.tree.preview_insert(commitment)

        self._step("deposit", "AssembleWitness")
        witness = DepositWitness(
            deposit_amount=amount,
            new_commitment=commitment,
            leaf_index=preview.index,
            old_root=snapshot.root,
            new_root=preview.root,
            owner=owner,
            pool_id=self.pool_id,
            blinding=blinding,
            insertion_proof=preview.proof,
        )

        self._step("deposit", "RequestProof")
        proof, public_inputs = self._request_proof(CircuitId.DEPOSIT, witness.to_circuit_inputs())

        self._step("deposit", "SubmitLedgerTx")
        tx_id = self._submit(LedgerSubmission(
            kind=OperationKind.DEPOSIT,
            proof=proof.proof_bytes,
            old_root=snapshot.root,
            new_root=preview.root,
            amount=amount,
            public_inputs=public_inputs,
            commitment=commitment,
            leaf_index=preview.index,
        ))

        self._step("deposit", "RecordLocalState")
        self._check_not_stale(snapshot, "deposit")
        self.ledger.add_commitment(CommitmentRecord(
            commitment=commitment,
            amount=amount,
            owner=owner,
            pool_id=self.pool_id,
            blinding=blinding,
            nullifier_secret=nullifier_secret,
            leaf_index=preview.index,
            tx_ref=tx_id,
        ))
        self._check_root(preview.root, "deposit")
        self.ledger.record_confirmed_root(preview.root)

        logger.info(
            f"Deposit confirmed: {amount} at leaf {preview.index} "
            f"(commitment {short(commitment)}, tx {tx_id})"
        )
        return DepositReceipt(
            tx_id=tx_id,
            commitment=to_hex64(commitment),
            leaf_index=preview.index,
            old_root=to_hex64(snapshot.root),
            new_root=to_hex64(preview.root),
            amount=amount,
        )

    def withdraw(self, amount: int, recipient: Union[int, bytes]) -> WithdrawalReceipt:
        """
        Unshield ``amount`` to ``recipient`` from a single commitment.

        A full spend zeroes the source slot; a partial spend writes a change
        commitment for the remainder into the same slot.

        Args:
            amount: Positive amount to withdraw
            recipient: Field element, or up to 32 bytes (e.g. a public key)
                read big-endian and reduced into the field

        Returns:
            WithdrawalReceipt: Transaction id, nullifier, commitments and roots

        Raises:
            InvalidAmountError: If amount is not a positive integer
            InsufficientBalanceError: If unspent balance is below amount
            InvalidFieldElementError: If recipient is not a field element or is
                longer than 32 bytes
            MultiInputUnsupportedError: If no single commitment covers amount
            ProofGenerationFailedError: If the prover fails
            LedgerSubmissionFailedError: If the ledger rejects the transaction
            StaleAttemptError: If the tree moved while waiting on the ledger
        """
        self._require_amount(amount)
        recipient_field = self._encode_recipient(recipient)

        self._step("withdraw", "SelectCommitments")
        selected = self.ledger.find_commitments_for_amount(amount)
        if len(selected) > 1:
            raise MultiInputUnsupportedError(
                f"Withdrawing {amount} needs {len(selected)} commitments; "
                f"only single-input withdrawals are supported"
            )
        source = selected[0]

        self._step("withdraw", "DeriveNullifier")
        nonce = self.ledger.next_nonce(source.commitment)
        nullifier = self.codec.compute_nullifier(source.commitment, source.nullifier_secret, nonce)
        if self.ledger.is_nullifier_revealed(nullifier):
            raise NullifierReuseError(f"Nullifier {short(nullifier)} already revealed")

        remainder = source.amount - amount
        change_record: Optional[CommitmentRecord] = None
        new_leaf = MerkleAccumulator.ZERO_LEAF
        change_blinding = 0

        if remainder > 0:
            self._step("withdraw", "ComputeChangeCommitment")
            change_blinding = self.codec.generate_blinding()
            change_commitment = self.codec.compute_commitment(
                source.owner, remainder, source.pool_id, change_blinding
            )
            change_record = CommitmentRecord(
                commitment=change_commitment,
                amount=remainder,
                owner=source.owner,
                pool_id=source.pool_id,
                blinding=change_blinding,
                nullifier_secret=self.codec.generate_nullifier_secret(),
                leaf_index=source.leaf_index,
            )
            new_leaf = change_commitment

        self._step("withdraw", "UpdateTreeLeaf")
        snapshot = self._snapshot()
        merkle_proof = self.tree.get_proof(source.leaf_index)
        update = self.tree.preview_update(source.leaf_index, new_leaf)

        self._step("withdraw", "AssembleWitness")
        witness = WithdrawWitness(
            amount=amount,
            recipient=recipient_field,
            nullifier=nullifier,
            old_root=snapshot.root,
            new_root=update.new_root,
            owner=source.owner,
            balance=source.amount,
            pool_id=source.pool_id,
            blinding=source.blinding,
            merkle_proof=merkle_proof,
            leaf_index=source.leaf_index,
            nullifier_secret=source.nullifier_secret,
            nonce=nonce,
            new_balance_blinding=change_blinding,
            new_balance_leaf_index=source.leaf_index,
            new_balance_proof=update.proof,
        )

        self._step("withdraw", "RequestProof")
        proof, public_inputs = self._request_proof(CircuitId.WITHDRAW, witness.to_circuit_inputs())

        self._step("withdraw", "SubmitLedgerTx")
        self.ledger.register_nullifier_reveal(source.commitment, nonce, nullifier)
        tx_id = self._submit(LedgerSubmission(
            kind=OperationKind.WITHDRAW,
            proof=proof.proof_bytes,
            old_root=snapshot.root,
            new_root=update.new_root,
            amount=amount,
            public_inputs=public_inputs,
            nullifier=nullifier,
            recipient=recipient_field,
        ))

        self._step("withdraw", "MarkSpentLocally")
        self._check_not_stale(snapshot, "withdraw")
        self.tree.update(source.leaf_index, new_leaf)
        self._check_root(update.new_root, "withdraw")
        self.ledger.mark_spent(source.commitment, tx_id)

        if change_record is not None:
            self._step("withdraw", "RecordChangeCommitment")
            change_record.tx_ref = tx_id
            self.ledger.add_commitment(change_record)

        self.ledger.record_confirmed_root(update.new_root)

        logger.info(
            f"Withdrawal confirmed: {amount} from leaf {source.leaf_index} "
            f"(nullifier {short(nullifier)}, change {remainder}, tx {tx_id})"
        )
        return WithdrawalReceipt(
            tx_id=tx_id,
            nullifier=to_hex64(nullifier),
            spent_commitment=source.key,
            change_commitment=change_record.key if change_record is not None else None,
            amount=amount,
            old_root=to_hex64(snapshot.root),
            new_root=to_hex64(update.new_root),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _step(operation: str, step: str) -> None:
        logger.debug(f"{operation}: {step}")

    @staticmethod
    def _require_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise InvalidAmountError(f"Amount must be an integer, got {amount!r}")
        if amount <= 0 or amount >= FIELD_MODULUS:
            raise InvalidAmountError(f"Amount must be positive and below the field modulus, got {amount}")

    @staticmethod
    def _encode_recipient(recipient: Union[int, bytes]) -> int:
        if isinstance(recipient, (bytes, bytearray)):
            return bytes_to_field(recipient)
        return require_field(recipient, "recipient")

    def _snapshot(self) -> _TreeSnapshot:
        return _TreeSnapshot(leaf_count=self.tree.leaf_count, root=self.tree.get_root())

    def _check_not_stale(self, snapshot: _TreeSnapshot, operation: str) -> None:
        current = self._snapshot()
        if current != snapshot:
            logger.warning(
                f"{operation}: tree moved during the attempt "
                f"(leaf_count {snapshot.leaf_count} -> {current.leaf_count})"
            )
            raise StaleAttemptError(
                f"Tree changed while the {operation} was in flight; resync required"
            )

    def _check_root(self, expected: int, operation: str) -> None:
        actual = self.tree.get_root()
        if actual != expected:
            raise StateCorruptionError(
                f"{operation}: local root {short(actual)} differs from "
                f"submitted root {short(expected)}"
            )

    def _request_proof(self, circuit: CircuitId, inputs: dict) -> Tuple[ProofResult, List[bytes]]:
        try:
            result = self.prover.prove(circuit, inputs)
        except Exception as e:
            logger.warning(f"Proof generation failed for {circuit.value}: {e}")
            raise ProofGenerationFailedError(f"{circuit.value} proof failed: {e}") from e

        try:
            Groth16Proof.from_bytes(result.proof_bytes)
        except (TypeError, ValueError) as e:
            logger.warning(f"Prover returned a malformed {circuit.value} proof: {e}")
            raise ProofGenerationFailedError(f"{circuit.value} proof is malformed: {e}") from e

        try:
            public_inputs = format_public_inputs(result.public_inputs)
        except (TypeError, ValueError) as e:
            raise ProofGenerationFailedError(f"{circuit.value} public inputs are malformed: {e}") from e
        return result, public_inputs

    def _submit(self, submission: LedgerSubmission) -> str:
        try:
            tx_id = self.ledger_client.submit(submission)
        except Exception as e:
            logger.warning(f"Ledger submission failed for {submission.kind.value}: {e}")
            raise LedgerSubmissionFailedError(f"{submission.kind.value} submission failed: {e}") from e

        if not tx_id:
            raise LedgerSubmissionFailedError(f"{submission.kind.value} submission returned no transaction id")
        return tx_id
