"""Tests for deposit and withdraw orchestration."""

import pytest

from shieldpool.core.collaborators import CircuitId, ProofResult
from shieldpool.core.orchestrator import TransactionOrchestrator
from shieldpool.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidFieldElementError,
    LedgerSubmissionFailedError,
    MultiInputUnsupportedError,
    ProofGenerationFailedError,
    StaleAttemptError,
)
from shieldpool.models.schemas import OperationKind
from shieldpool.utils.field import FIELD_MODULUS, from_hex, to_hex64

RECIPIENT = 0xABCDEF


class TestDeposit:
    """Tests for the deposit flow."""

    def test_deposit_records_commitment(self, orchestrator, ledger, owner):
        """Test a confirmed deposit lands in tree and ledger."""
        receipt = orchestrator.deposit(owner, 1000)

        assert receipt.tx_id == "tx-1"
        assert receipt.leaf_index == 0
        assert receipt.amount == 1000
        assert ledger.get_total_unspent_balance() == 1000
        assert ledger.tree.leaf_count == 1
        assert ledger.tree.get_leaf(0) == from_hex(receipt.commitment)
        assert to_hex64(ledger.current_root) == receipt.new_root
        assert ledger.last_confirmed_root == ledger.current_root

        record = ledger.get_commitment(receipt.commitment)
        assert record.owner == owner
        assert record.pool_id == 7
        assert record.tx_ref == "tx-1"

    def test_deposit_witness_and_submission(self, orchestrator, prover, ledger_client, owner):
        """Test the prover and ledger see consistent public values."""
        receipt = orchestrator.deposit(owner, 1000)

        circuit, inputs = prover.calls[0]
        assert circuit == CircuitId.DEPOSIT
        assert inputs["deposit_amount"] == "1000"
        assert inputs["leaf_index"] == "0"
        assert inputs["new_commitment"] == str(from_hex(receipt.commitment))
        assert inputs["private_inputs"]["vault_id"] == "7"
        assert len(inputs["private_inputs"]["insertion_proof"]["siblings"]) == 8

        submission = ledger_client.submissions[0]
        assert submission.kind == OperationKind.DEPOSIT
        assert submission.leaf_index == 0
        assert submission.old_root == from_hex(receipt.old_root)
        assert submission.new_root == from_hex(receipt.new_root)
        assert len(submission.proof) == 256
        assert all(len(pi) == 32 for pi in submission.public_inputs)

    def test_sequential_deposits(self, orchestrator, ledger, owner):
        """Test leaf indices advance one per deposit."""
        indices = [orchestrator.deposit(owner, 100 * (i + 1)).leaf_index for i in range(3)]
        assert indices == [0, 1, 2]
        assert ledger.get_total_unspent_balance() == 600

    def test_invalid_amount(self, orchestrator, prover):
        """Test amounts are validated before anything else."""
        for bad in (0, -1, FIELD_MODULUS, 1.5, True):
            with pytest.raises(InvalidAmountError):
                orchestrator.deposit(1, bad)
        assert prover.calls == []

    def test_proof_failure_leaves_no_trace(self, ledger, failing_prover, ledger_client, owner):
        """Test a prover failure changes nothing locally."""
        orchestrator = TransactionOrchestrator(ledger, failing_prover, ledger_client)
        root = ledger.current_root

        with pytest.raises(ProofGenerationFailedError) as exc_info:
            orchestrator.deposit(owner, 1000)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert ledger.current_root == root
        assert ledger.tree.leaf_count == 0
        assert ledger_client.submissions == []

    def test_malformed_proof_rejected(self, ledger, ledger_client, owner):
        """Test a proof blob that is not 256 bytes never reaches the ledger."""

        class ShortProofProver:
            def prove(self, circuit, inputs):
                return ProofResult(proof_bytes=b"\x01" * 255, public_inputs=[])

        orchestrator = TransactionOrchestrator(ledger, ShortProofProver(), ledger_client)
        with pytest.raises(ProofGenerationFailedError) as exc_info:
            orchestrator.deposit(owner, 1000)

        assert isinstance(exc_info.value.__cause__, ValueError)
        assert ledger_client.submissions == []
        assert ledger.tree.leaf_count == 0

    def test_submission_failure_then_retry(self, ledger, prover, flaky_ledger_client, owner):
        """Test a retry after a rejected submission reuses the slot with fresh blinding."""
        orchestrator = TransactionOrchestrator(ledger, prover, flaky_ledger_client)

        with pytest.raises(LedgerSubmissionFailedError):
            orchestrator.deposit(owner, 1000)
        assert ledger.tree.leaf_count == 0
        assert len(ledger) == 0

        receipt = orchestrator.deposit(owner, 1000)
        assert receipt.leaf_index == 0
        first_attempt = prover.calls[0][1]
        second_attempt = prover.calls[1][1]
        assert first_attempt["private_inputs"]["blinding"] != second_attempt["private_inputs"]["blinding"]
        assert first_attempt["new_commitment"] != second_attempt["new_commitment"]

    def test_stale_attempt(self, ledger, prover, codec, owner):
        """Test a tree that moves during submission aborts the deposit."""

        class InterleavingLedgerClient:
            def submit(self, submission):
                ledger.tree.insert(codec.compute_commitment(owner, 1, 0, 1))
                return "tx-interleaved"

        orchestrator = TransactionOrchestrator(ledger, prover, InterleavingLedgerClient())
        with pytest.raises(StaleAttemptError):
            orchestrator.deposit(owner, 1000)
        assert len(ledger) == 0


class TestWithdraw:
    """Tests for the withdraw flow."""

    def test_full_withdrawal(self, orchestrator, ledger, owner):
        """Test a full spend zeroes the slot and marks the record spent."""
        deposit = orchestrator.deposit(owner, 1000)
        receipt = orchestrator.withdraw(1000, RECIPIENT)

        assert receipt.change_commitment is None
        assert receipt.spent_commitment == deposit.commitment
        assert ledger.tree.get_leaf(0) == ledger.tree.zero_value(0)
        assert ledger.tree.leaf_count == 1
        assert ledger.get_commitment(deposit.commitment).spent
        assert ledger.get_commitment(deposit.commitment).tx_ref == receipt.tx_id
        assert ledger.get_unspent_commitments() == []
        assert ledger.get_total_unspent_balance() == 0
        assert to_hex64(ledger.current_root) == receipt.new_root

    def test_partial_withdrawal(self, orchestrator, ledger, owner):
        """Test a partial spend writes one change record into the source slot."""
        deposit = orchestrator.deposit(owner, 1000)
        receipt = orchestrator.withdraw(400, RECIPIENT)

        unspent = ledger.get_unspent_commitments()
        assert len(unspent) == 1
        change = unspent[0]
        assert change.amount == 600
        assert change.owner == owner
        assert change.pool_id == 7
        assert change.key == receipt.change_commitment
        assert change.leaf_index == 0
        assert ledger.tree.get_leaf(0) == change.commitment
        assert ledger.tree.leaf_count == 1
        assert ledger.get_commitment(deposit.commitment).spent
        assert ledger.get_total_unspent_balance() == 600

    def test_withdraw_witness(self, orchestrator, prover, ledger_client, owner, ledger):
        """Test the withdraw circuit inputs and ledger submission."""
        orchestrator.deposit(owner, 1000)
        receipt = orchestrator.withdraw(400, RECIPIENT)

        circuit, inputs = prover.calls[1]
        assert circuit == CircuitId.WITHDRAW
        assert inputs["amount"] == "400"
        assert inputs["recipient"] == str(RECIPIENT)
        assert inputs["nullifier"] == str(from_hex(receipt.nullifier))
        private = inputs["private_inputs"]
        assert private["balance"] == "1000"
        assert private["nonce"] == "0"
        assert private["leaf_index"] == "0"
        assert private["new_balance_leaf_index"] == "0"

        submission = ledger_client.submissions[1]
        assert submission.kind == OperationKind.WITHDRAW
        assert submission.recipient == RECIPIENT
        assert submission.nullifier == from_hex(receipt.nullifier)
        assert submission.commitment is None

    def test_recipient_bytes(self, orchestrator, ledger_client, owner):
        """Test byte recipients are read big-endian."""
        orchestrator.deposit(owner, 1000)
        orchestrator.withdraw(1000, b"\x01\x00")
        assert ledger_client.submissions[1].recipient == 256

    def test_successive_partial_withdrawals(self, orchestrator, ledger, owner):
        """Test change can itself be spent."""
        orchestrator.deposit(owner, 1000)
        orchestrator.withdraw(400, RECIPIENT)
        orchestrator.withdraw(100, RECIPIENT)
        assert ledger.get_total_unspent_balance() == 500
        assert len(ledger.get_unspent_commitments()) == 1

    def test_insufficient_balance(self, orchestrator, owner, prover):
        """Test withdrawing more than the balance fails before proving."""
        orchestrator.deposit(owner, 100)
        with pytest.raises(InsufficientBalanceError):
            orchestrator.withdraw(101, RECIPIENT)
        assert len(prover.calls) == 1

    def test_multi_input_rejected(self, orchestrator, owner, prover, ledger):
        """Test amounts needing two commitments fail fast."""
        orchestrator.deposit(owner, 300)
        orchestrator.deposit(owner, 300)
        root = ledger.current_root

        with pytest.raises(MultiInputUnsupportedError):
            orchestrator.withdraw(500, RECIPIENT)
        assert len(prover.calls) == 2
        assert ledger.current_root == root

    def test_submission_failure_advances_nonce(self, ledger, prover, owner):
        """Test a retry after a rejected submission reveals a fresh nullifier."""
        attempts = []

        class SecondCallFailsLedgerClient:
            def submit(self, submission):
                attempts.append(submission)
                if len(attempts) == 2:
                    raise ConnectionError("timeout")
                return f"tx-{len(attempts)}"

        orchestrator = TransactionOrchestrator(ledger, prover, SecondCallFailsLedgerClient())
        deposit = orchestrator.deposit(owner, 1000)

        with pytest.raises(LedgerSubmissionFailedError):
            orchestrator.withdraw(1000, RECIPIENT)
        assert not ledger.get_commitment(deposit.commitment).spent
        assert ledger.next_nonce(deposit.commitment) == 1
        assert ledger.get_total_unspent_balance() == 1000

        receipt = orchestrator.withdraw(1000, RECIPIENT)
        assert attempts[1].nullifier != attempts[2].nullifier
        assert receipt.nullifier == to_hex64(attempts[2].nullifier)
        assert prover.calls[2][1]["private_inputs"]["nonce"] == "1"

    def test_proof_failure_keeps_nonce(self, ledger, prover, ledger_client, failing_prover, owner):
        """Test a prover failure reveals nothing."""
        orchestrator = TransactionOrchestrator(ledger, prover, ledger_client)
        deposit = orchestrator.deposit(owner, 1000)
        orchestrator.prover = failing_prover

        with pytest.raises(ProofGenerationFailedError):
            orchestrator.withdraw(500, RECIPIENT)
        assert ledger.next_nonce(deposit.commitment) == 0
        assert ledger.get_total_unspent_balance() == 1000
        assert ledger.tree.get_leaf(0) == from_hex(deposit.commitment)

    def test_invalid_recipient(self, orchestrator, owner):
        """Test out-of-field recipients are rejected."""
        orchestrator.deposit(owner, 1000)
        with pytest.raises(InvalidFieldElementError):
            orchestrator.withdraw(10, FIELD_MODULUS)

    def test_oversized_recipient_bytes(self, orchestrator, owner, prover, ledger):
        """Test recipients longer than 32 bytes are rejected before proving."""
        orchestrator.deposit(owner, 1000)
        with pytest.raises(InvalidFieldElementError):
            orchestrator.withdraw(10, b"\x01" * 33)
        assert len(prover.calls) == 1
        assert ledger.next_nonce(ledger.get_unspent_commitments()[0].commitment) == 0
