"""Base58 helpers shared by the crypto, deep-link and transaction modules."""

from typing import Union

import base58

BytesLike = Union[bytes, bytearray, memoryview]


def b58encode(data: BytesLike) -> str:
    """Encode bytes as a base58 string (Bitcoin alphabet)."""
    return base58.b58encode(bytes(data)).decode("ascii")


def b58decode(value: str) -> bytes:
    """Decode a base58 string.

    Raises:
        ValueError: If the string contains characters outside the alphabet
    """
    if not isinstance(value, str):
        raise ValueError(f"Expected base58 string, got {type(value).__name__}")
    if not value:
        raise ValueError("Empty base58 string")
    return base58.b58decode(value)


def to_bytes(value: Union[str, BytesLike]) -> bytes:
    """Accept raw bytes or base58 text and return raw bytes."""
    if isinstance(value, str):
        return b58decode(value)
    return bytes(value)
