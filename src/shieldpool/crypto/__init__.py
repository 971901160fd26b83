"""Cryptographic primitives module"""

from shieldpool.crypto.poseidon2 import Poseidon2Sponge, permute

from shieldpool.crypto.hashing import (
    FieldHasher,
    Poseidon2Hasher,
    Sha256FieldHasher,
    create_hasher,
)

__all__ = [
    'Poseidon2Sponge',
    'permute',
    'FieldHasher',
    'Poseidon2Hasher',
    'Sha256FieldHasher',
    'create_hasher',
]
