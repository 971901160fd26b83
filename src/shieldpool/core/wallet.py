"""Wallet keys: Ed25519 keypair mapped onto shielded-pool field elements."""

from typing import Optional, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from shieldpool.core.commitment import CommitmentCodec
from shieldpool.exceptions import ValidationError
from shieldpool.utils.encoding import bytes_to_field

SECRET_KEY_BYTES = 32


class ShieldedWallet:
    """
    Holds the wallet's signing key and derives its pool identity.

    ``secret_key_field`` feeds CommitmentCodec.derive_owner; the owner field
    is cached per wallet. The public key doubles as withdrawal recipient.
    """

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key
        self._owner: Optional[Tuple[CommitmentCodec, int]] = None

    @classmethod
    def generate(cls) -> "ShieldedWallet":
        """Create a wallet with a fresh Ed25519 key."""
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_secret_key(cls, secret_key: bytes) -> "ShieldedWallet":
        """
        Load a wallet from its 32-byte Ed25519 seed.

        Raises:
            ValidationError: If secret_key is not 32 bytes
        """
        if not isinstance(secret_key, (bytes, bytearray)) or len(secret_key) != SECRET_KEY_BYTES:
            raise ValidationError(f"Secret key must be {SECRET_KEY_BYTES} bytes")
        return cls(Ed25519PrivateKey.from_private_bytes(bytes(secret_key)))

    @property
    def secret_key_bytes(self) -> bytes:
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )

    @property
    def public_key_bytes(self) -> bytes:
        return self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @property
    def secret_key_field(self) -> int:
        """Secret key read big-endian and reduced into the field."""
        return bytes_to_field(self.secret_key_bytes)

    @property
    def recipient_field(self) -> int:
        """Public key read big-endian and reduced into the field."""
        return bytes_to_field(self.public_key_bytes)

    def owner_field(self, codec: CommitmentCodec) -> int:
        """Owner identifier H(secret_key), computed once per codec."""
        if self._owner is None or self._owner[0] is not codec:
            self._owner = (codec, codec.derive_owner(self.secret_key_field))
        return self._owner[1]

    def __repr__(self) -> str:
        return f"ShieldedWallet(public_key={self.public_key_bytes.hex()[:16]}...)"
