"""
Snapvote Deployment Configuration

Loads all sections of snapvote.toml. Environment variables override TOML
values.
"""

from .loader import (
    AirdropConfig,
    GovernorConfig,
    NetworkConfig,
    SnapvoteConfig,
    TimelockConfig,
    TokenConfig,
    load_config,
)

__all__ = [
    "AirdropConfig",
    "GovernorConfig",
    "NetworkConfig",
    "SnapvoteConfig",
    "TimelockConfig",
    "TokenConfig",
    "load_config",
]
