"""Field hash backends injected into the codec and the accumulator."""

import hashlib
from typing import Protocol, Sequence, runtime_checkable

from shieldpool.crypto.poseidon2 import Poseidon2Sponge
from shieldpool.exceptions import ConfigurationError
from shieldpool.utils.field import FIELD_MODULUS, reduce


@runtime_checkable
class FieldHasher(Protocol):
    """Anything that maps a sequence of field elements to one field element."""

    def hash(self, inputs: Sequence[int]) -> int:
        ...


class Poseidon2Hasher:
    """
    Circuit-compatible hasher (Poseidon2 sponge over BN254).

    This is the backend the external verifier expects.
    """

    name = "poseidon2"

    def __init__(self, sponge: Poseidon2Sponge = None):
        self.sponge = sponge or Poseidon2Sponge()

    def hash(self, inputs: Sequence[int]) -> int:
        return self.sponge.hash(inputs)

    def hash_pair(self, left: int, right: int) -> int:
        """Hash two elements (Merkle node)."""
        return self.sponge.hash([left, right])

    def __repr__(self) -> str:
        return f"Poseidon2Hasher(length_prefixed_iv={self.sponge.length_prefixed_iv})"


class Sha256FieldHasher:
    """
    SHA-256 over 32-byte big-endian encodings, reduced into the field.

    Not circuit compatible. Useful for offline tooling and fast fixtures.
    """

    name = "sha256"

    def hash(self, inputs: Sequence[int]) -> int:
        data = b"".join((value % FIELD_MODULUS).to_bytes(32, "big") for value in inputs)
        return reduce(int.from_bytes(hashlib.sha256(data).digest(), "big"))

    def hash_pair(self, left: int, right: int) -> int:
        return self.hash([left, right])

    def __repr__(self) -> str:
        return "Sha256FieldHasher()"


_BACKENDS = {
    Poseidon2Hasher.name: Poseidon2Hasher,
    Sha256FieldHasher.name: Sha256FieldHasher,
}


def create_hasher(name: str = Poseidon2Hasher.name) -> FieldHasher:
    """
    Build a hash backend by name.

    Raises:
        ConfigurationError: If the backend is unknown
    """
    try:
        return _BACKENDS[name]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown hash backend {name!r} (expected one of {sorted(_BACKENDS)})"
        )
