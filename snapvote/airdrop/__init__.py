"""
Snapvote Airdrop Module

Merkle-committed, claim-once token distribution.
"""

from .merkle import (
    MerkleTreeError,
    StandardMerkleTree,
    hash_pair,
    leaf_hash,
    process_proof,
    verify_proof,
)
from .merkle_airdrop import (
    AirdropError,
    AlreadyClaimed,
    Claimed,
    InvalidProof,
    MerkleAirdrop,
)

__all__ = [
    'StandardMerkleTree',
    'MerkleTreeError',
    'hash_pair',
    'leaf_hash',
    'process_proof',
    'verify_proof',
    'MerkleAirdrop',
    'AirdropError',
    'AlreadyClaimed',
    'InvalidProof',
    'Claimed',
]
