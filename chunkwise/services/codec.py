"""
Embedding codec: float32 vectors <-> fixed-width big-endian bytes.

Each component is 4 bytes, IEEE-754 single precision, most significant byte
first. An empty vector encodes to b"".
"""

from __future__ import annotations

import struct
from collections.abc import Sequence

from chunkwise.errors import VectorFormatError

BYTES_PER_COMPONENT = 4


def encode(vector: Sequence[float]) -> bytes:
    """Pack a vector into big-endian float32 bytes."""
    return struct.pack(f">{len(vector)}f", *vector)


def decode(data: bytes) -> list[float]:
    """
    Unpack big-endian float32 bytes into a list of floats.

    Raises:
        VectorFormatError: If the byte length is not a multiple of 4.
    """
    if len(data) % BYTES_PER_COMPONENT:
        raise VectorFormatError(
            f"Embedding byte length {len(data)} is not a multiple of "
            f"{BYTES_PER_COMPONENT}",
            details={"length": len(data)},
        )
    return list(struct.unpack(f">{len(data) // BYTES_PER_COMPONENT}f", data))


def dimensions(data: bytes) -> int:
    """Number of components in an encoded vector."""
    return len(data) // BYTES_PER_COMPONENT
