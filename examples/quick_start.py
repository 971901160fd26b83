#!/usr/bin/env python3
"""
Quick start guide for the shielded pool client.

Runs a deposit / partial withdrawal / restore cycle against an in-process
stand-in prover and ledger. Swap them for real backends to talk to a pool.
"""

import sys
import tempfile
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shieldpool.client import ShieldedPoolClient
from shieldpool.config import Settings, configure_logging
from shieldpool.core.collaborators import ProofResult
from shieldpool.core.wallet import ShieldedWallet
from shieldpool.storage.database import DatabaseManager


class LocalProver:
    """Returns a placeholder proof and echoes the public inputs."""

    def prove(self, circuit, inputs):
        public = [v for k, v in inputs.items() if k != "private_inputs"]
        return ProofResult(proof_bytes=bytes(256), public_inputs=public)


class LocalLedger:
    """Accepts every submission."""

    def __init__(self):
        self.count = 0

    def submit(self, submission):
        self.count += 1
        return f"local-tx-{self.count}"


def main():
    """Run a simple example of the shielded pool client."""

    print("=" * 70)
    print("SHIELDED POOL QUICK START EXAMPLE")
    print("=" * 70)
    print()

    workdir = tempfile.mkdtemp()
    settings = Settings(tree_depth=8, database_url=f"sqlite:///{workdir}/quick_start.db")
    configure_logging(settings)

    store = DatabaseManager(settings.database_url)
    store.create_tables()

    # Step 1: Connect a wallet
    print("Step 1: Connect a wallet")
    print("-" * 70)
    wallet = ShieldedWallet.generate()
    client = ShieldedPoolClient(settings, LocalProver(), LocalLedger(), wallet=wallet, store=store)
    print(f"✓ {wallet!r}")
    print(f"  Tree depth: {settings.tree_depth} (capacity {client.ledger.tree.capacity})")
    print()

    # Step 2: Deposit
    print("Step 2: Deposit 1000")
    print("-" * 70)
    deposit = client.deposit(1000)
    print(f"✓ Deposit confirmed ({deposit.tx_id})")
    print(f"  Commitment: {deposit.commitment[:32]}...")
    print(f"  Leaf Index: {deposit.leaf_index}")
    print(f"  New Root: {deposit.new_root[:32]}...")
    print()

    # Step 3: Partial withdrawal
    print("Step 3: Withdraw 400 to the wallet's public key")
    print("-" * 70)
    withdrawal = client.withdraw(400)
    print(f"✓ Withdrawal confirmed ({withdrawal.tx_id})")
    print(f"  Nullifier: {withdrawal.nullifier[:32]}...")
    print(f"  Change Commitment: {withdrawal.change_commitment[:32]}...")
    print(f"  Balance: {client.get_balance()}")
    print()

    # Step 4: Restore into a fresh client
    print("Step 4: Restore state from the snapshot store")
    print("-" * 70)
    restored = ShieldedPoolClient(settings, LocalProver(), LocalLedger(), wallet=wallet, store=store)
    restored.restore()
    state = restored.get_pool_state()
    print(f"✓ Restored")
    print(f"  Root: {state.merkle_root[:32]}...")
    print(f"  Leaves: {state.leaf_count}")
    print(f"  Balance: {state.unspent_balance}")
    print()

    print("=" * 70)
    print("✓ QUICK START COMPLETE")
    print("=" * 70)


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
