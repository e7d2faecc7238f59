"""
Contract Addressing & Calldata

Ethereum-compatible contract address computation and function-call
encoding used by proposals and the timelock.
"""

from typing import Any, List, Tuple

import rlp
from eth_abi import decode, encode
from eth_utils import keccak, to_checksum_address


def generate_contract_address(sender: str, nonce: int) -> str:
    """
    Generate contract address using CREATE opcode logic.

    Address = keccak256(rlp([sender, nonce]))[-20:]

    Args:
        sender: Deployer address (0x-prefixed)
        nonce: Deployer's deployment nonce

    Returns:
        Contract address (Ethereum checksum format)
    """
    sender_bytes = bytes.fromhex(sender[2:] if sender.startswith('0x') else sender)
    rlp_encoded = rlp.encode([sender_bytes, nonce])
    address_bytes = keccak(rlp_encoded)[-20:]
    return to_checksum_address('0x' + address_bytes.hex())


def parse_argument_types(function_signature: str) -> List[str]:
    """
    Parse argument types from a signature.

    E.g., "transfer(address,uint256)" -> ['address', 'uint256']
    """
    args_start = function_signature.index('(') + 1
    args_end = function_signature.rindex(')')
    arg_types_str = function_signature[args_start:args_end]
    if not arg_types_str:
        return []
    return [t.strip() for t in arg_types_str.split(',')]


def compute_function_selector(function_signature: str) -> bytes:
    """
    Compute the 4-byte function selector.

    Args:
        function_signature: Canonical signature (e.g., "store(uint256)")

    Returns:
        First 4 bytes of keccak256(signature)
    """
    sig_hash = keccak(function_signature.encode('utf-8'))
    return sig_hash[:4]


def encode_function_call(function_signature: str, *args) -> bytes:
    """
    Encode function call data (selector + ABI-encoded arguments).

    Args:
        function_signature: Function signature
        *args: Function arguments

    Returns:
        Encoded call data
    """
    selector = compute_function_selector(function_signature)
    arg_types = parse_argument_types(function_signature)
    if arg_types:
        encoded_args = encode(arg_types, list(args))
    else:
        encoded_args = b''
    return selector + encoded_args


def decode_function_call(data: bytes) -> Tuple[bytes, bytes]:
    """
    Split call data into selector and arguments.

    Args:
        data: Raw call data

    Returns:
        Tuple of (selector, encoded_args)
    """
    if len(data) < 4:
        raise ValueError("Call data too short (need at least 4 bytes)")
    return data[:4], data[4:]


def decode_arguments(function_signature: str, encoded_args: bytes) -> Tuple[Any, ...]:
    """Decode ABI-encoded arguments for *function_signature*."""
    arg_types = parse_argument_types(function_signature)
    if not arg_types:
        return ()
    return decode(arg_types, encoded_args)
