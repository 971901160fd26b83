"""Fixed-depth append-only Merkle accumulator for balance commitments."""

from dataclasses import dataclass
from typing import Dict, List, Tuple

from shieldpool.crypto.hashing import FieldHasher
from shieldpool.exceptions import OutOfRangeError, TreeFullError
from shieldpool.utils.field import require_field, to_bytes32, to_hex64


@dataclass(frozen=True)
class MerkleProof:
    """
    Sibling path from a leaf to the root.

    ``path_indices[i]`` is 1 when the node at level ``i`` is a right child
    (combine as ``H(sibling, current)``) and 0 when it is a left child
    (combine as ``H(current, sibling)``).
    """

    siblings: Tuple[int, ...]
    path_indices: Tuple[int, ...]

    def __post_init__(self):
        if len(self.siblings) != len(self.path_indices):
            raise ValueError("siblings and path_indices must have the same length")

    def __len__(self) -> int:
        return len(self.siblings)

    def pairs(self) -> List[Tuple[int, bool]]:
        """Return ``(sibling, is_right)`` pairs, leaf level first."""
        return [(s, bool(i)) for s, i in zip(self.siblings, self.path_indices)]

    def to_circuit_format(self) -> dict:
        """Decimal strings, as the circuit ABI expects."""
        return {
            "siblings": [str(s) for s in self.siblings],
            "path_indices": [str(i) for i in self.path_indices],
        }

    def to_bytes_format(self) -> dict:
        """32-byte big-endian siblings, as ledger instructions expect."""
        return {
            "siblings": [to_bytes32(s) for s in self.siblings],
            "path_indices": list(self.path_indices),
        }


@dataclass(frozen=True)
class InsertResult:
    """Outcome of appending a leaf."""

    root: int
    index: int
    proof: MerkleProof


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of replacing an existing leaf. ``proof`` is the slot's sibling path."""

    old_root: int
    new_root: int
    proof: MerkleProof


class MerkleAccumulator:
    """
    Sparse fixed-depth binary Merkle tree.

    Mirrors the circuit's hashing convention exactly:
    - Empty leaves are ``ZERO_LEAF``; ``zero_values[i + 1] = H(z_i, z_i)``
    - At each level an odd index is a right child: ``H(sibling, current)``
    - An even index is a left child: ``H(current, sibling)``
    - Missing siblings resolve to ``zero_values[level]``

    Only populated nodes are stored, one dict per level. The tree performs no
    locking; one owner must serialize all mutations.
    """

    DEFAULT_DEPTH = 20
    MAX_DEPTH = 32
    ZERO_LEAF = 0

    def __init__(self, hasher: FieldHasher, depth: int = DEFAULT_DEPTH):
        """
        Initialize empty accumulator.

        Args:
            hasher: Field hash backend used for every node
            depth: Number of levels below the root (1..32)

        Raises:
            ValueError: If depth is invalid
        """
        if depth < 1 or depth > self.MAX_DEPTH:
            raise ValueError(f"Tree depth must be between 1 and {self.MAX_DEPTH}")

        self.hasher = hasher
        self.depth = depth
        self.capacity = 2 ** depth
        self.levels: List[Dict[int, int]] = [dict() for _ in range(depth + 1)]
        self._leaf_count = 0
        self.zero_values = self._compute_zero_values()

    def _compute_zero_values(self) -> List[int]:
        current = self.ZERO_LEAF
        values = [current]
        for _ in range(self.depth):
            current = self._hash_pair(current, current)
            values.append(current)
        return values

    def _hash_pair(self, left: int, right: int) -> int:
        return self.hasher.hash([left, right])

    def _walk(self, index: int, leaf: int) -> Tuple[int, MerkleProof, List[Tuple[int, int, int]]]:
        """
        Recompute the path from ``leaf`` placed at ``index`` up to the root.

        Pure: returns (root, proof, nodes) where nodes are the
        ``(level, position, value)`` writes an actual mutation would perform.
        """
        siblings = []
        path_indices = []
        nodes = []

        position = index
        current = leaf

        for level in range(self.depth):
            is_right = position % 2 == 1
            sibling_position = position - 1 if is_right else position + 1
            sibling = self.levels[level].get(sibling_position, self.zero_values[level])

            siblings.append(sibling)
            path_indices.append(1 if is_right else 0)

            if is_right:
                current = self._hash_pair(sibling, current)
            else:
                current = self._hash_pair(current, sibling)

            position //= 2
            nodes.append((level + 1, position, current))

        return current, MerkleProof(tuple(siblings), tuple(path_indices)), nodes

    def _apply(self, index: int, leaf: int, nodes: List[Tuple[int, int, int]]) -> None:
        self.levels[0][index] = leaf
        for level, position, value in nodes:
            self.levels[level][position] = value

    def _check_populated(self, index: int) -> None:
        if not isinstance(index, int) or index < 0 or index >= self._leaf_count:
            raise OutOfRangeError(
                f"Index {index} out of bounds (leaf_count: {self._leaf_count})"
            )

    def preview_insert(self, leaf: int) -> InsertResult:
        """
        Return what insert(leaf) would return, without mutating the tree.

        Raises:
            TreeFullError: If no free slot is left
            InvalidFieldElementError: If leaf is not a field element
        """
        require_field(leaf, "leaf")
        if self._leaf_count >= self.capacity:
            raise TreeFullError(f"Tree is full (max {self.capacity} leaves)")

        index = self._leaf_count
        root, proof, _ = self._walk(index, leaf)
        return InsertResult(root=root, index=index, proof=proof)

    def insert(self, leaf: int) -> InsertResult:
        """
        Append a leaf at ``index = leaf_count``.

        Returns:
            InsertResult: New root, leaf index and the leaf's sibling path

        Raises:
            TreeFullError: If no free slot is left
            InvalidFieldElementError: If leaf is not a field element
        """
        require_field(leaf, "leaf")
        if self._leaf_count >= self.capacity:
            raise TreeFullError(f"Tree is full (max {self.capacity} leaves)")

        index = self._leaf_count
        root, proof, nodes = self._walk(index, leaf)
        self._apply(index, leaf, nodes)
        self._leaf_count += 1
        return InsertResult(root=root, index=index, proof=proof)

    def preview_update(self, index: int, new_leaf: int) -> UpdateResult:
        """Return what update(index, new_leaf) would return, without mutating."""
        self._check_populated(index)
        require_field(new_leaf, "new_leaf")
        new_root, proof, _ = self._walk(index, new_leaf)
        return UpdateResult(old_root=self.get_root(), new_root=new_root, proof=proof)

    def update(self, index: int, new_leaf: int) -> UpdateResult:
        """
        Replace an already-inserted leaf in place.

        Used to zero a fully spent slot or to write a change commitment.
        Never changes leaf_count.

        Raises:
            OutOfRangeError: If index >= leaf_count
        """
        self._check_populated(index)
        require_field(new_leaf, "new_leaf")
        old_root = self.get_root()
        new_root, proof, nodes = self._walk(index, new_leaf)
        self._apply(index, new_leaf, nodes)
        return UpdateResult(old_root=old_root, new_root=new_root, proof=proof)

    def get_proof(self, index: int) -> MerkleProof:
        """
        Return the sibling path for a populated leaf.

        Raises:
            OutOfRangeError: If index >= leaf_count
        """
        self._check_populated(index)

        siblings = []
        path_indices = []
        position = index

        for level in range(self.depth):
            is_right = position % 2 == 1
            sibling_position = position - 1 if is_right else position + 1
            siblings.append(self.levels[level].get(sibling_position, self.zero_values[level]))
            path_indices.append(1 if is_right else 0)
            position //= 2

        return MerkleProof(tuple(siblings), tuple(path_indices))

    def get_root(self) -> int:
        """Current root (the empty-tree root before any insert)."""
        return self.levels[self.depth].get(0, self.zero_values[self.depth])

    @property
    def root(self) -> int:
        return self.get_root()

    def get_leaf(self, index: int) -> int:
        """
        Return the leaf at index, or ZERO_LEAF if the slot is unset.

        Raises:
            OutOfRangeError: If index is outside the tree capacity
        """
        if not isinstance(index, int) or index < 0 or index >= self.capacity:
            raise OutOfRangeError(f"Index {index} outside tree capacity {self.capacity}")
        return self.levels[0].get(index, self.ZERO_LEAF)

    @property
    def leaf_count(self) -> int:
        """Number of insert calls so far."""
        return self._leaf_count

    def zero_value(self, level: int) -> int:
        """Root of an empty subtree of the given height."""
        return self.zero_values[level]

    def compute_root(self, leaf: int, proof: MerkleProof) -> int:
        """Fold a proof over a leaf without touching the tree."""
        current = leaf
        for sibling, is_right in proof.pairs():
            if is_right:
                current = self._hash_pair(sibling, current)
            else:
                current = self._hash_pair(current, sibling)
        return current

    def verify_proof(self, leaf: int, proof: MerkleProof, expected_root: int) -> bool:
        """
        Check that leaf and proof hash up to expected_root.

        Returns:
            bool: False on mismatch or on a proof of the wrong length
        """
        if len(proof) != self.depth:
            return False
        return self.compute_root(leaf, proof) == expected_root

    def get_state(self) -> dict:
        """
        Get the current state of the tree for diagnostics.

        Returns:
            dict: Depth, capacity, leaf count and hex root
        """
        return {
            "depth": self.depth,
            "capacity": self.capacity,
            "leaf_count": self._leaf_count,
            "root": to_hex64(self.get_root()),
        }

    def __len__(self) -> int:
        """Return the number of inserted leaves."""
        return self._leaf_count

    def __repr__(self) -> str:
        return (
            f"MerkleAccumulator(depth={self.depth}, "
            f"leaves={self._leaf_count}/{self.capacity}, "
            f"root={to_hex64(self.get_root())[:16]}...)"
        )
