"""High-level client: one wallet, one ledger, one operation at a time."""

import logging
import threading
from contextlib import contextmanager
from typing import List, Optional, Union

from shieldpool.config import Settings, get_settings
from shieldpool.core.collaborators import LedgerClient, Prover
from shieldpool.core.commitment import CommitmentCodec
from shieldpool.core.ledger import CoinLedger, CommitmentRecord
from shieldpool.core.orchestrator import TransactionOrchestrator
from shieldpool.core.wallet import ShieldedWallet
from shieldpool.crypto.hashing import FieldHasher, create_hasher
from shieldpool.exceptions import ConfigurationError, OperationInProgressError, StorageError
from shieldpool.models.schemas import DepositReceipt, PoolStateResponse, WithdrawalReceipt
from shieldpool.storage.database import DatabaseManager
from shieldpool.utils.field import from_hex, to_hex64

logger = logging.getLogger(__name__)


class ShieldedPoolClient:
    """
    Wallet-facing entry point.

    Deposits, withdrawals and imports go through a non-blocking gate: while
    one is in flight any other raises OperationInProgressError immediately.
    Read-only queries never take the gate.

    Example:
        >>> client = ShieldedPoolClient(settings, prover, ledger_client)
        >>> client.connect(ShieldedWallet.generate())
        >>> client.deposit(1000)
        >>> client.withdraw(250)
        >>> client.get_balance()
        750
    """

    def __init__(
        self,
        settings: Optional[Settings],
        prover: Prover,
        ledger_client: LedgerClient,
        wallet: Optional[ShieldedWallet] = None,
        hasher: Optional[FieldHasher] = None,
        store: Optional[DatabaseManager] = None,
    ):
        """
        Initialize client.

        Args:
            settings: Client settings (global settings when None)
            prover: Proof backend
            ledger_client: Ledger submission backend
            wallet: Wallet to connect right away
            hasher: Hash backend override (settings.hash_backend otherwise)
            store: Snapshot store; every confirmed operation is persisted
        """
        self.settings = settings or get_settings()
        self.hasher = hasher or create_hasher(self.settings.hash_backend.value)
        self.codec = CommitmentCodec(self.hasher)
        self.ledger = CoinLedger(
            self.codec,
            depth=self.settings.tree_depth,
            root_history_size=self.settings.root_history_size,
        )
        self.orchestrator = TransactionOrchestrator(
            self.ledger, prover, ledger_client, pool_id=self.settings.pool_id
        )
        self.store = store
        self._wallet: Optional[ShieldedWallet] = None
        self._gate = threading.Lock()

        if wallet is not None:
            self.connect(wallet)

    # Connection
    def connect(self, wallet: ShieldedWallet) -> None:
        self._wallet = wallet
        logger.info(f"Connected {wallet!r}")

    def disconnect(self) -> None:
        self._wallet = None

    @property
    def is_connected(self) -> bool:
        return self._wallet is not None

    @property
    def wallet(self) -> ShieldedWallet:
        if self._wallet is None:
            raise ConfigurationError("Wallet not connected")
        return self._wallet

    @contextmanager
    def _exclusive(self, operation: str):
        if not self._gate.acquire(blocking=False):
            raise OperationInProgressError(
                f"Cannot start {operation}: another operation is in progress"
            )
        try:
            yield
        finally:
            self._gate.release()

    # Mutations
    def deposit(self, amount: int) -> DepositReceipt:
        """
        Deposit into the pool for the connected wallet.

        Raises:
            ConfigurationError: If no wallet is connected
            OperationInProgressError: If another operation is in flight
        """
        owner = self.wallet.owner_field(self.codec)
        with self._exclusive("deposit"):
            receipt = self.orchestrator.deposit(owner, amount)
            self._persist(receipt.tx_id)
        return receipt

    def withdraw(self, amount: int, recipient: Optional[Union[int, bytes]] = None) -> WithdrawalReceipt:
        """
        Withdraw from the pool.

        Args:
            amount: Amount to withdraw
            recipient: Field element or public key bytes; the connected
                wallet's public key when omitted

        Raises:
            ConfigurationError: If no wallet is connected
            OperationInProgressError: If another operation is in flight
        """
        if recipient is None:
            recipient = self.wallet.public_key_bytes
        elif not self.is_connected:
            raise ConfigurationError("Wallet not connected")

        with self._exclusive("withdraw"):
            receipt = self.orchestrator.withdraw(amount, recipient)
            self._persist(receipt.tx_id)
        return receipt

    def import_state(self, data: Union[str, bytes], confirmed_root: Optional[int] = None) -> None:
        """Replace local state with an exported document (see CoinLedger.import_state)."""
        with self._exclusive("import"):
            self.ledger.import_state(data, confirmed_root)

    def restore(self) -> bool:
        """
        Import the latest stored snapshot, validated against the latest stored root.

        Returns:
            bool: False if the store holds no snapshot yet

        Raises:
            ConfigurationError: If no store is configured
            StateCorruptionError: If the snapshot does not rebuild to the root
        """
        if self.store is None:
            raise ConfigurationError("No snapshot store configured")

        with self._exclusive("restore"):
            with self.store.get_session() as session:
                snapshot = self.store.latest_snapshot(session)
                root = self.store.get_current_root(session)
            if snapshot is None:
                return False
            confirmed_root = from_hex(root.root_hex) if root is not None else None
            self.ledger.import_state(snapshot.state_json, confirmed_root)

        logger.info(f"Restored ledger snapshot #{snapshot.id} ({snapshot.leaf_count} leaves)")
        return True

    def _persist(self, tx_ref: str) -> None:
        """
        Snapshot confirmed state into the store.

        The transaction is already final on the ledger, so a storage failure
        is logged and the receipt still reaches the caller; the next
        successful persist or an export_state() recovers the gap.
        """
        if self.store is None:
            return
        root_hex = to_hex64(self.ledger.current_root)
        leaf_count = self.ledger.tree.leaf_count
        try:
            with self.store.get_session() as session:
                self.store.save_snapshot(session, self.ledger.export_state(), leaf_count, root_hex)
                self.store.add_merkle_root(session, root_hex, leaf_count, tx_ref)
        except StorageError as e:
            logger.warning(f"Confirmed tx {tx_ref} was not persisted: {e}")

    # Queries
    def get_balance(self) -> int:
        return self.ledger.get_total_unspent_balance()

    def get_unspent_commitments(self) -> List[CommitmentRecord]:
        return self.ledger.get_unspent_commitments()

    def get_root(self) -> int:
        return self.ledger.current_root

    def export_state(self) -> str:
        return self.ledger.export_state()

    def get_pool_state(self) -> PoolStateResponse:
        """Summary of tree and balance."""
        last_root = self.ledger.last_confirmed_root
        return PoolStateResponse(
            merkle_root=to_hex64(self.ledger.current_root),
            tree_depth=self.ledger.tree.depth,
            leaf_count=self.ledger.tree.leaf_count,
            unspent_balance=self.get_balance(),
            unspent_count=len(self.get_unspent_commitments()),
            last_confirmed_root=to_hex64(last_root) if last_root is not None else None,
        )
