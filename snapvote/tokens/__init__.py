"""
Snapvote Token Module

Governance token with checkpointed voting power and signed approvals.
"""

from .checkpoints import Checkpoint, CheckpointUnorderedInsertion, Trace
from .governance_token import (
    Approval,
    DelegateChanged,
    DelegateVotesChanged,
    ExpiredSignature,
    FutureLookup,
    GovernanceToken,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidDelegatee,
    InvalidNonce,
    InvalidReceiver,
    InvalidSigner,
    SupplyCapExceeded,
    TokenError,
    Transfer,
)

__all__ = [
    'Checkpoint',
    'CheckpointUnorderedInsertion',
    'Trace',
    'GovernanceToken',
    'TokenError',
    'InsufficientBalance',
    'InsufficientAllowance',
    'InvalidReceiver',
    'InvalidDelegatee',
    'FutureLookup',
    'ExpiredSignature',
    'InvalidSigner',
    'InvalidNonce',
    'SupplyCapExceeded',
    'Transfer',
    'Approval',
    'DelegateChanged',
    'DelegateVotesChanged',
]
