"""
Snapvote Crypto Hashing Module

Provides the hash functions used for identifiers and Merkle trees:
- keccak256: Ethereum-standard Keccak over bytes or hex strings
- keccak_text: Keccak over UTF-8 text (description hashes, role names)
- abi_hash: Keccak over an ABI encoding (proposal / operation ids)
"""

from typing import Any, Sequence, Union

from eth_abi import encode
from eth_utils import keccak


def keccak256(data: Union[bytes, str]) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum standard).

    Args:
        data: Input bytes or hex string

    Returns:
        32-byte hash
    """
    if isinstance(data, str):
        if data.startswith('0x') or data.startswith('0X'):
            data = bytes.fromhex(data[2:])
        else:
            data = bytes.fromhex(data)
    return keccak(data)


def keccak_text(text: str) -> bytes:
    """Keccak-256 of the UTF-8 encoding of *text*."""
    return keccak(text=text)


def abi_hash(types: Sequence[str], values: Sequence[Any]) -> bytes:
    """Keccak-256 of ``abi.encode(types, values)``."""
    return keccak(encode(list(types), list(values)))


def to_bytes32(value: Union[bytes, str, int]) -> bytes:
    """Normalize a hex string, int or bytes into a 32-byte word."""
    if isinstance(value, int):
        return value.to_bytes(32, 'big')
    if isinstance(value, str):
        value = bytes.fromhex(value[2:] if value.lower().startswith('0x') else value)
    if len(value) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(value)}")
    return value
