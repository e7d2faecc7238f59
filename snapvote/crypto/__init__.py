"""
Snapvote Crypto Module

Hashing, address derivation and calldata encoding.
"""

from .hashing import abi_hash, keccak256, keccak_text, to_bytes32
from .contract import (
    compute_function_selector,
    decode_arguments,
    decode_function_call,
    encode_function_call,
    generate_contract_address,
)

__all__ = [
    'abi_hash',
    'keccak256',
    'keccak_text',
    'to_bytes32',
    'compute_function_selector',
    'decode_arguments',
    'decode_function_call',
    'encode_function_call',
    'generate_contract_address',
]
