"""BN254 scalar field helpers.

Every commitment, nullifier and tree node handled by this package is an
``int`` in ``[0, FIELD_MODULUS)``. Values cross the process boundary in three
shapes: 32-byte big-endian blobs (ledger submissions), 64-digit hex strings
(persistence keys) and decimal strings (circuit inputs).
"""

import secrets
from typing import Union

from shieldpool.exceptions import InvalidFieldElementError

# BN254 (alt_bn128) scalar field, the native field of the proving circuits
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

FIELD_BYTES = 32


def reduce(value: int) -> int:
    """Reduce an arbitrary integer into the field."""
    return value % FIELD_MODULUS


def is_canonical(value) -> bool:
    """Return True if value is an int already in ``[0, FIELD_MODULUS)``."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < FIELD_MODULUS


def require_field(value, name: str = "value") -> int:
    """
    Validate that value is a canonical field element.

    Raises:
        InvalidFieldElementError: If value is not an int in range
    """
    if not is_canonical(value):
        raise InvalidFieldElementError(f"{name} must be a field element, got {value!r}")
    return value


def to_bytes32(value: int) -> bytes:
    """Encode a field element as 32 big-endian bytes."""
    return require_field(value).to_bytes(FIELD_BYTES, "big")


def from_bytes32(data: bytes, strict: bool = True) -> int:
    """
    Decode 32 big-endian bytes.

    Args:
        data: Exactly 32 bytes
        strict: Reject non-canonical encodings instead of reducing them

    Raises:
        InvalidFieldElementError: On bad length or (strict) out-of-range value
    """
    if not isinstance(data, (bytes, bytearray)) or len(data) != FIELD_BYTES:
        raise InvalidFieldElementError("Expected 32 bytes")
    value = int.from_bytes(data, "big")
    if strict:
        return require_field(value)
    return reduce(value)


def to_hex64(value: int) -> str:
    """Encode as 64 lower-case hex digits without prefix."""
    return format(require_field(value), "064x")


def from_hex(hex_str: str) -> int:
    """Decode a hex string (with or without ``0x``) into a field element."""
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]
    try:
        value = int(hex_str, 16)
    except ValueError:
        raise InvalidFieldElementError(f"Invalid hex string: {hex_str!r}")
    return require_field(value)


def to_decimal(value: int) -> str:
    """Encode as decimal string (circuit and persistence format)."""
    return str(require_field(value))


def from_decimal(value: Union[str, int]) -> int:
    """Decode a decimal string into a field element."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise InvalidFieldElementError(f"Invalid decimal field element: {value!r}")
    return require_field(parsed)


def random_field_element() -> int:
    """Uniformly random 256-bit value reduced modulo the field prime."""
    return reduce(int.from_bytes(secrets.token_bytes(FIELD_BYTES), "big"))


def short(value: int) -> str:
    """Abbreviated hex form for log messages."""
    return format(value, "064x")[:16] + "..."
