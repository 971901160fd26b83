"""Pytest configuration and fixtures."""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from shieldpool.config import Settings, reset_settings  # noqa: E402
from shieldpool.core.collaborators import ProofResult  # noqa: E402
from shieldpool.core.commitment import CommitmentCodec  # noqa: E402
from shieldpool.core.ledger import CoinLedger  # noqa: E402
from shieldpool.core.merkle_tree import MerkleAccumulator  # noqa: E402
from shieldpool.core.orchestrator import TransactionOrchestrator  # noqa: E402
from shieldpool.crypto.hashing import Poseidon2Hasher, Sha256FieldHasher  # noqa: E402
from shieldpool.utils.field import FIELD_MODULUS  # noqa: E402


class LinearHasher:
    """Toy hasher H(x) = sum((i + 1) * x_i) mod p. Order-sensitive and easy to compute by hand."""

    name = "linear"

    def hash(self, inputs):
        return sum((i + 1) * x for i, x in enumerate(inputs)) % FIELD_MODULUS


class FakeProver:
    """Prover that records every call and returns a fixed 256-byte proof."""

    def __init__(self):
        self.calls = []

    def prove(self, circuit, inputs):
        self.calls.append((circuit, inputs))
        public = [v for k, v in inputs.items() if k != "private_inputs"]
        return ProofResult(proof_bytes=b"\x01" * 256, public_inputs=public)


class FailingProver:
    """Prover that always fails."""

    def __init__(self):
        self.calls = 0

    def prove(self, circuit, inputs):
        self.calls += 1
        raise RuntimeError("prover backend crashed")


class FakeLedgerClient:
    """Ledger that accepts everything, unless told to fail the next N submissions."""

    def __init__(self, fail_next: int = 0):
        self.submissions = []
        self.fail_next = fail_next

    def submit(self, submission):
        if self.fail_next > 0:
            self.fail_next -= 1
            raise ConnectionError("ledger rejected transaction")
        self.submissions.append(submission)
        return f"tx-{len(self.submissions)}"


@pytest.fixture
def linear_hasher():
    """Hand-computable hasher."""
    return LinearHasher()


@pytest.fixture
def sha_hasher():
    """Fast hasher for structural tests."""
    return Sha256FieldHasher()


@pytest.fixture(scope="session")
def poseidon_hasher():
    """Circuit-compatible hasher."""
    return Poseidon2Hasher()


@pytest.fixture
def codec(sha_hasher):
    """Commitment codec over SHA-256."""
    return CommitmentCodec(sha_hasher)


@pytest.fixture
def ledger(codec):
    """Empty ledger with a depth-8 tree."""
    return CoinLedger(codec, depth=8)


@pytest.fixture
def prover():
    return FakeProver()


@pytest.fixture
def ledger_client():
    return FakeLedgerClient()


@pytest.fixture
def orchestrator(ledger, prover, ledger_client):
    """Orchestrator wired to fakes."""
    return TransactionOrchestrator(ledger, prover, ledger_client, pool_id=7)


@pytest.fixture
def owner(codec):
    """Owner identifier for a fixed secret key."""
    return codec.derive_owner(123456789)


@pytest.fixture
def small_tree(linear_hasher):
    """Depth-3 tree over the toy hasher."""
    return MerkleAccumulator(linear_hasher, depth=3)


@pytest.fixture
def settings(tmp_path):
    """Settings for a small SHA-256 tree backed by a temporary database."""
    return Settings(
        tree_depth=8,
        pool_id=7,
        hash_backend="sha256",
        database_url=f"sqlite:///{tmp_path / 'shieldpool.db'}",
    )


@pytest.fixture(autouse=True)
def _reset_global_settings():
    """Keep cached settings from leaking between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def failing_prover():
    return FailingProver()


@pytest.fixture
def flaky_ledger_client():
    """Ledger that rejects the first submission."""
    return FakeLedgerClient(fail_next=1)
