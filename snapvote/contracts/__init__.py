"""
Simulated contract primitives and governed targets.
"""

from .base import (
    Contract,
    ContractError,
    Ownable,
    OwnableInvalidOwner,
    OwnableUnauthorizedAccount,
    OwnershipTransferred,
    transaction,
)
from .box import Box, ValueChanged

__all__ = [
    "Contract",
    "ContractError",
    "Ownable",
    "OwnableInvalidOwner",
    "OwnableUnauthorizedAccount",
    "OwnershipTransferred",
    "transaction",
    "Box",
    "ValueChanged",
]
