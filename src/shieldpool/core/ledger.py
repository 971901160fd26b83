"""Local coin ledger: commitment bookkeeping, coin selection and persistence."""

import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Set, Union

from pydantic import ValidationError as SchemaValidationError

from shieldpool.core.commitment import CommitmentCodec
from shieldpool.core.merkle_tree import MerkleAccumulator, MerkleProof
from shieldpool.exceptions import (
    CommitmentNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
    NullifierReuseError,
    OutOfRangeError,
    ShieldedPoolError,
    StateCorruptionError,
    TreeFullError,
)
from shieldpool.models.schemas import CommitmentRecordModel, LedgerStateModel
from shieldpool.utils.field import from_decimal, require_field, short, to_hex64

logger = logging.getLogger(__name__)

DEFAULT_ROOT_HISTORY_SIZE = 32


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CommitmentRecord:
    """
    A spendable (or spent) balance commitment tracked by the ledger.

    Created on deposit or on a withdrawal's change output; only ``spent`` and
    ``tx_ref`` ever change afterwards.
    """

    commitment: int
    amount: int
    owner: int
    pool_id: int
    blinding: int
    nullifier_secret: int
    leaf_index: int
    spent: bool = False
    tx_ref: Optional[str] = None
    timestamp: int = field(default_factory=_now_ms)

    @property
    def key(self) -> str:
        """64-hex map key of the commitment."""
        return to_hex64(self.commitment)

    def to_dict(self) -> dict:
        """Serialize with camelCase keys and decimal-string field elements."""
        return {
            "commitment": str(self.commitment),
            "amount": str(self.amount),
            "owner": str(self.owner),
            "poolId": str(self.pool_id),
            "blinding": str(self.blinding),
            "nullifierSecret": str(self.nullifier_secret),
            "leafIndex": self.leaf_index,
            "spent": self.spent,
            "txRef": self.tx_ref,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_model(cls, model: CommitmentRecordModel) -> "CommitmentRecord":
        return cls(
            commitment=from_decimal(model.commitment),
            amount=from_decimal(model.amount),
            owner=from_decimal(model.owner),
            pool_id=from_decimal(model.pool_id),
            blinding=from_decimal(model.blinding),
            nullifier_secret=from_decimal(model.nullifier_secret),
            leaf_index=model.leaf_index,
            spent=model.spent,
            tx_ref=model.tx_ref,
            timestamp=model.timestamp,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "CommitmentRecord":
        return cls.from_model(CommitmentRecordModel.model_validate(data))


def _commitment_key(commitment: Union[int, str]) -> str:
    if isinstance(commitment, str):
        return commitment.lower()
    return to_hex64(commitment)


class CoinLedger:
    """
    Tracks commitment records, nullifier secrets and spend nonces, and owns the
    Merkle accumulator those commitments live in.

    Like the accumulator, the ledger has no internal locking. Mutations must be
    serialized by the single owner (see ShieldedPoolClient).
    """

    def __init__(
        self,
        codec: CommitmentCodec,
        tree: Optional[MerkleAccumulator] = None,
        depth: int = MerkleAccumulator.DEFAULT_DEPTH,
        root_history_size: int = DEFAULT_ROOT_HISTORY_SIZE,
    ):
        """
        Initialize ledger.

        Args:
            codec: Commitment codec (its hasher also builds the tree)
            tree: Existing accumulator; a fresh one of ``depth`` otherwise
            depth: Tree depth when no tree is supplied
            root_history_size: How many confirmed roots to remember
        """
        if root_history_size < 1:
            raise ValueError("root_history_size must be positive")

        self.codec = codec
        self.tree = tree if tree is not None else MerkleAccumulator(codec.hasher, depth)
        self.root_history_size = root_history_size

        self._records: Dict[str, CommitmentRecord] = {}
        self._nullifier_secrets: Dict[str, int] = {}
        self._spend_nonces: Dict[str, int] = {}
        self._revealed_nullifiers: Set[str] = set()
        self._confirmed_roots: Deque[int] = deque(maxlen=root_history_size)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def add_commitment(self, record: CommitmentRecord) -> None:
        """
        Track a confirmed commitment and keep the tree consistent with it.

        If the record's slot is the next free one the leaf is inserted; if the
        slot is already populated its leaf must already be the commitment.

        Raises:
            StateCorruptionError: On duplicates, gaps, leaf mismatch, a second
                unspent record in the slot or a commitment that does not open
            OutOfRangeError: If leaf_index is outside the tree capacity
            TreeFullError: If the tree has no free slot left
        """
        self._validate_record(record)
        key = record.key

        if key in self._records:
            raise StateCorruptionError(f"Duplicate commitment {short(record.commitment)}")

        leaf_count = self.tree.leaf_count
        if record.leaf_index > leaf_count:
            raise StateCorruptionError(
                f"Leaf index {record.leaf_index} leaves a gap (leaf_count: {leaf_count})"
            )

        if record.leaf_index < leaf_count:
            existing = self.tree.get_leaf(record.leaf_index)
            if existing != record.commitment:
                raise StateCorruptionError(
                    f"Slot {record.leaf_index} holds {short(existing)}, "
                    f"not {short(record.commitment)}"
                )
            if not record.spent and self._unspent_at(record.leaf_index) is not None:
                raise StateCorruptionError(
                    f"Slot {record.leaf_index} already has an unspent commitment"
                )
        else:
            self.tree.insert(record.commitment)

        self._records[key] = record
        self._nullifier_secrets[key] = record.nullifier_secret
        logger.debug(
            f"Tracked commitment {short(record.commitment)} at leaf {record.leaf_index}"
        )

    def _validate_record(self, record: CommitmentRecord) -> None:
        for name in ("commitment", "amount", "owner", "pool_id", "blinding", "nullifier_secret"):
            require_field(getattr(record, name), name)

        if not isinstance(record.leaf_index, int) or not (
            0 <= record.leaf_index < self.tree.capacity
        ):
            raise OutOfRangeError(
                f"Leaf index {record.leaf_index} outside tree capacity {self.tree.capacity}"
            )

        if not self.codec.verify_commitment(
            record.owner, record.amount, record.pool_id, record.blinding, record.commitment
        ):
            raise StateCorruptionError(
                f"Commitment {short(record.commitment)} does not open to its record"
            )

    def _unspent_at(self, leaf_index: int) -> Optional[CommitmentRecord]:
        for record in self._records.values():
            if record.leaf_index == leaf_index and not record.spent:
                return record
        return None

    def mark_spent(self, commitment: Union[int, str], tx_ref: Optional[str] = None) -> CommitmentRecord:
        """
        Mark a commitment as spent.

        Raises:
            CommitmentNotFoundError: If the commitment is unknown
            NullifierReuseError: If it is already spent
        """
        record = self._require_record(commitment)
        if record.spent:
            raise NullifierReuseError(f"Commitment {record.key[:16]}... is already spent")
        record.spent = True
        record.tx_ref = tx_ref
        logger.debug(f"Marked commitment {record.key[:16]}... spent (tx: {tx_ref})")
        return record

    def _require_record(self, commitment: Union[int, str]) -> CommitmentRecord:
        record = self._records.get(_commitment_key(commitment))
        if record is None:
            raise CommitmentNotFoundError(f"Unknown commitment {_commitment_key(commitment)[:16]}...")
        return record

    def get_commitment(self, commitment: Union[int, str]) -> Optional[CommitmentRecord]:
        return self._records.get(_commitment_key(commitment))

    def get_nullifier_secret(self, commitment: Union[int, str]) -> Optional[int]:
        return self._nullifier_secrets.get(_commitment_key(commitment))

    def get_proof_for_commitment(self, commitment: Union[int, str]) -> MerkleProof:
        """
        Merkle proof for a tracked commitment's slot.

        Raises:
            CommitmentNotFoundError: If the commitment is unknown
        """
        record = self._require_record(commitment)
        return self.tree.get_proof(record.leaf_index)

    # ------------------------------------------------------------------
    # Balance and selection
    # ------------------------------------------------------------------

    def get_unspent_commitments(self) -> List[CommitmentRecord]:
        """Unspent records ordered by leaf index."""
        unspent = [r for r in self._records.values() if not r.spent]
        return sorted(unspent, key=lambda r: (r.leaf_index, r.timestamp))

    def get_all_commitments(self) -> List[CommitmentRecord]:
        return sorted(self._records.values(), key=lambda r: (r.leaf_index, r.timestamp))

    def get_total_unspent_balance(self) -> int:
        return sum(r.amount for r in self._records.values() if not r.spent)

    def find_commitments_for_amount(self, target: int) -> List[CommitmentRecord]:
        """
        Greedy coin selection.

        Unspent records are taken largest first until their total covers
        ``target``.

        Raises:
            InvalidAmountError: If target is not a positive integer
            InsufficientBalanceError: If total unspent balance is below target
        """
        if not isinstance(target, int) or isinstance(target, bool) or target <= 0:
            raise InvalidAmountError(f"Amount must be a positive integer, got {target!r}")

        available = self.get_total_unspent_balance()
        if available < target:
            raise InsufficientBalanceError(target, available)

        candidates = sorted(
            self.get_unspent_commitments(), key=lambda r: (-r.amount, r.leaf_index)
        )
        selected = []
        total = 0
        for record in candidates:
            selected.append(record)
            total += record.amount
            if total >= target:
                break
        return selected

    # ------------------------------------------------------------------
    # Nullifiers and roots
    # ------------------------------------------------------------------

    def next_nonce(self, commitment: Union[int, str]) -> int:
        """Nonce the next spend attempt of this commitment must use."""
        return self._spend_nonces.get(_commitment_key(commitment), 0)

    def is_nullifier_revealed(self, nullifier: int) -> bool:
        return to_hex64(nullifier) in self._revealed_nullifiers

    def register_nullifier_reveal(self, commitment: Union[int, str], nonce: int, nullifier: int) -> None:
        """
        Record that ``nullifier`` is about to be revealed for ``commitment``.

        Advances ``next_nonce(commitment)`` past ``nonce`` so any later attempt
        derives a fresh nullifier.

        Raises:
            CommitmentNotFoundError: If the commitment is unknown
            NullifierReuseError: If the nonce is stale or the nullifier was seen
        """
        record = self._require_record(commitment)
        expected = self.next_nonce(record.key)
        if nonce < expected:
            raise NullifierReuseError(
                f"Nonce {nonce} is stale for {record.key[:16]}... (next: {expected})"
            )

        nullifier_key = to_hex64(nullifier)
        if nullifier_key in self._revealed_nullifiers:
            raise NullifierReuseError(f"Nullifier {nullifier_key[:16]}... already revealed")

        self._revealed_nullifiers.add(nullifier_key)
        self._spend_nonces[record.key] = nonce + 1

    def record_confirmed_root(self, root: int) -> None:
        """Remember a ledger-confirmed root (oldest dropped beyond history size)."""
        self._confirmed_roots.append(require_field(root, "root"))

    @property
    def last_confirmed_root(self) -> Optional[int]:
        return self._confirmed_roots[-1] if self._confirmed_roots else None

    def is_known_root(self, root: int) -> bool:
        return root in self._confirmed_roots

    @property
    def current_root(self) -> int:
        return self.tree.get_root()

    def get_state(self) -> dict:
        """Summary of tree and balance for diagnostics."""
        state = self.tree.get_state()
        state.update({
            "unspent_balance": self.get_total_unspent_balance(),
            "unspent_count": len(self.get_unspent_commitments()),
            "tracked_commitments": len(self._records),
            "revealed_nullifiers": len(self._revealed_nullifiers),
        })
        return state

    def clear(self) -> None:
        """Drop every record and start from an empty tree."""
        self.tree = MerkleAccumulator(self.tree.hasher, self.tree.depth)
        self._records = {}
        self._nullifier_secrets = {}
        self._spend_nonces = {}
        self._revealed_nullifiers = set()
        self._confirmed_roots = deque(maxlen=self.root_history_size)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_state(self) -> str:
        """
        Serialize ledger state to JSON.

        Returns:
            str: Document with commitments, nullifierSecrets, spendNonces,
                revealedNullifiers, lastConfirmedRoot, treeDepth and leafCount
        """
        records = self.get_all_commitments()
        last_root = self.last_confirmed_root
        state = {
            "commitments": [[r.key, r.to_dict()] for r in records],
            "nullifierSecrets": [[r.key, str(self._nullifier_secrets[r.key])] for r in records],
            "spendNonces": sorted([k, n] for k, n in self._spend_nonces.items()),
            "revealedNullifiers": sorted(self._revealed_nullifiers),
            "lastConfirmedRoot": str(last_root) if last_root is not None else None,
            "treeDepth": self.tree.depth,
            "leafCount": self.tree.leaf_count,
        }
        return json.dumps(state)

    def import_state(self, data: Union[str, bytes], confirmed_root: Optional[int] = None) -> None:
        """
        Replace ledger state with an exported document.

        The tree is rebuilt by replaying one insert per slot in ascending leaf
        index. The rebuilt root must equal ``confirmed_root`` when given, else
        the document's ``lastConfirmedRoot`` when present. Nothing is modified
        unless the whole document validates.

        Raises:
            StateCorruptionError: On any validation failure
        """
        try:
            state = LedgerStateModel.model_validate_json(data)
        except SchemaValidationError as e:
            raise StateCorruptionError(f"Malformed ledger state: {e}") from e

        try:
            records, secrets, nonces, revealed, expected_root = self._decode_state(state, confirmed_root)
            tree = self._rebuild_tree(records, state.leaf_count)
        except StateCorruptionError:
            raise
        except ShieldedPoolError as e:
            raise StateCorruptionError(f"Invalid ledger state: {e}") from e

        if expected_root is not None and tree.get_root() != expected_root:
            raise StateCorruptionError(
                f"Rebuilt root {short(tree.get_root())} does not match "
                f"confirmed root {short(expected_root)}"
            )

        roots: Deque[int] = deque(maxlen=self.root_history_size)
        if expected_root is not None:
            roots.append(expected_root)

        self.tree = tree
        self._records = records
        self._nullifier_secrets = secrets
        self._spend_nonces = nonces
        self._revealed_nullifiers = revealed
        self._confirmed_roots = roots

        logger.info(
            f"Imported {len(records)} commitments "
            f"({tree.leaf_count} leaves, root {short(tree.get_root())})"
        )

    def _decode_state(self, state: LedgerStateModel, confirmed_root: Optional[int]):
        if state.tree_depth is not None and state.tree_depth != self.tree.depth:
            raise StateCorruptionError(
                f"Tree depth {state.tree_depth} does not match ledger depth {self.tree.depth}"
            )

        records: Dict[str, CommitmentRecord] = {}
        for key, model in state.commitments:
            record = CommitmentRecord.from_model(model)
            if record.key != key:
                raise StateCorruptionError(f"Key {key[:16]}... disagrees with its record")
            if key in records:
                raise StateCorruptionError(f"Duplicate commitment {key[:16]}...")
            self._validate_record(record)
            records[key] = record

        secrets: Dict[str, int] = {key: r.nullifier_secret for key, r in records.items()}
        for key, secret in state.nullifier_secrets:
            if key not in records:
                raise StateCorruptionError(f"Nullifier secret for unknown commitment {key[:16]}...")
            if from_decimal(secret) != records[key].nullifier_secret:
                raise StateCorruptionError(f"Nullifier secret for {key[:16]}... disagrees with its record")

        nonces: Dict[str, int] = {}
        for key, nonce in state.spend_nonces:
            if key not in records:
                raise StateCorruptionError(f"Spend nonce for unknown commitment {key[:16]}...")
            nonces[key] = nonce

        revealed = set(state.revealed_nullifiers)

        if confirmed_root is not None:
            expected_root = require_field(confirmed_root, "confirmed_root")
        elif state.last_confirmed_root is not None:
            expected_root = from_decimal(state.last_confirmed_root)
        else:
            expected_root = None

        return records, secrets, nonces, revealed, expected_root

    def _rebuild_tree(self, records: Dict[str, CommitmentRecord], leaf_count: Optional[int]) -> MerkleAccumulator:
        slots: Dict[int, int] = {}
        occupied: Set[int] = set()
        for record in records.values():
            if record.spent:
                slots.setdefault(record.leaf_index, MerkleAccumulator.ZERO_LEAF)
                continue
            if record.leaf_index in occupied:
                raise StateCorruptionError(
                    f"Two unspent commitments share slot {record.leaf_index}"
                )
            occupied.add(record.leaf_index)
            slots[record.leaf_index] = record.commitment

        highest = max(slots) + 1 if slots else 0
        if leaf_count is not None and leaf_count < highest:
            raise StateCorruptionError(
                f"leafCount {leaf_count} is below the highest recorded slot {highest - 1}"
            )
        total = leaf_count if leaf_count is not None else highest

        tree = MerkleAccumulator(self.tree.hasher, self.tree.depth)
        try:
            for index in range(total):
                tree.insert(slots.get(index, MerkleAccumulator.ZERO_LEAF))
        except TreeFullError as e:
            raise StateCorruptionError(f"State does not fit the tree: {e}") from e
        return tree

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return (
            f"CoinLedger(commitments={len(self._records)}, "
            f"unspent={self.get_total_unspent_balance()}, tree={self.tree!r})"
        )
