"""Byte encoding helpers for proof blobs and public inputs."""

from typing import List, Sequence, Union

from shieldpool.exceptions import InvalidFieldElementError
from shieldpool.utils.field import from_bytes32, reduce, to_bytes32


def bytes_to_field(data: Union[bytes, bytearray]) -> int:
    """
    Interpret up to 32 bytes big-endian, reduced into the field.

    Raises:
        InvalidFieldElementError: If data is longer than 32 bytes
    """
    if len(data) > 32:
        raise InvalidFieldElementError(f"Expected at most 32 bytes, got {len(data)}")
    return from_bytes32(bytes(data).rjust(32, b"\x00"), strict=False)


def public_inputs_to_bytes32(public_inputs: Sequence[Union[str, int]]) -> List[bytes]:
    """Convert decimal or hex public inputs to 32-byte big-endian values."""
    out = []
    for value in public_inputs:
        if isinstance(value, str):
            value = int(value, 16) if value.startswith("0x") else int(value)
        out.append(to_bytes32(reduce(value)))
    return out
