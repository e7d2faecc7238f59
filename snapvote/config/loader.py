"""
Snapvote TOML Configuration Loader

Loads the deployment parameters for a governance system from a TOML file
with environment variable overrides (dataclass + from_dict + apply_env).

Environment variable mapping:
    [network] name            → SNAPVOTE_NETWORK
    [network] chain_id        → SNAPVOTE_CHAIN_ID
    [network] deployments_dir → SNAPVOTE_DEPLOYMENTS_DIR
    [governor] voting_delay   → SNAPVOTE_VOTING_DELAY
    [governor] voting_period  → SNAPVOTE_VOTING_PERIOD
    [governor] quorum_percentage → SNAPVOTE_QUORUM_PERCENTAGE
    [governor] proposal_threshold → SNAPVOTE_PROPOSAL_THRESHOLD
    [timelock] min_delay      → SNAPVOTE_MIN_DELAY
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from eth_utils import is_address, to_checksum_address

from .. import constants
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _as_int(value: Any, key: str) -> int:
    """TOML ints pass through; decimal strings are accepted for large amounts."""
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from exc


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class NetworkConfig:
    """[network] section."""
    name: str = str(constants.SNAPVOTE_NETWORK)
    chain_id: int = constants.LOCAL_CHAIN_ID
    deployments_dir: str = str(constants.SNAPVOTE_DEPLOYMENTS_DIR)
    seconds_per_block: int = constants.SECONDS_PER_BLOCK

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NetworkConfig":
        return cls(
            name=data.get("name", cls.name),
            chain_id=_as_int(data.get("chain_id", cls.chain_id), "network.chain_id"),
            deployments_dir=data.get("deployments_dir", cls.deployments_dir),
            seconds_per_block=_as_int(
                data.get("seconds_per_block", cls.seconds_per_block), "network.seconds_per_block"
            ),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("SNAPVOTE_NETWORK"):
            self.name = v
        if v := os.environ.get("SNAPVOTE_CHAIN_ID"):
            self.chain_id = _as_int(v, "SNAPVOTE_CHAIN_ID")
        if v := os.environ.get("SNAPVOTE_DEPLOYMENTS_DIR"):
            self.deployments_dir = v


@dataclass
class TokenConfig:
    """[token] section."""
    name: str = constants.TOKEN_NAME
    symbol: str = constants.TOKEN_SYMBOL
    initial_supply: int = constants.INITIAL_SUPPLY

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenConfig":
        return cls(
            name=data.get("name", cls.name),
            symbol=data.get("symbol", cls.symbol),
            initial_supply=_as_int(
                data.get("initial_supply", cls.initial_supply), "token.initial_supply"
            ),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("SNAPVOTE_TOKEN_INITIAL_SUPPLY"):
            self.initial_supply = _as_int(v, "SNAPVOTE_TOKEN_INITIAL_SUPPLY")


@dataclass
class GovernorConfig:
    """[governor] section."""
    name: str = constants.GOVERNOR_NAME
    voting_delay: int = constants.VOTING_DELAY
    voting_period: int = constants.VOTING_PERIOD
    quorum_percentage: int = constants.QUORUM_PERCENTAGE
    proposal_threshold: int = constants.PROPOSAL_THRESHOLD

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernorConfig":
        return cls(
            name=data.get("name", cls.name),
            voting_delay=_as_int(data.get("voting_delay", cls.voting_delay), "governor.voting_delay"),
            voting_period=_as_int(data.get("voting_period", cls.voting_period), "governor.voting_period"),
            quorum_percentage=_as_int(
                data.get("quorum_percentage", cls.quorum_percentage), "governor.quorum_percentage"
            ),
            proposal_threshold=_as_int(
                data.get("proposal_threshold", cls.proposal_threshold), "governor.proposal_threshold"
            ),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("SNAPVOTE_VOTING_DELAY"):
            self.voting_delay = _as_int(v, "SNAPVOTE_VOTING_DELAY")
        if v := os.environ.get("SNAPVOTE_VOTING_PERIOD"):
            self.voting_period = _as_int(v, "SNAPVOTE_VOTING_PERIOD")
        if v := os.environ.get("SNAPVOTE_QUORUM_PERCENTAGE"):
            self.quorum_percentage = _as_int(v, "SNAPVOTE_QUORUM_PERCENTAGE")
        if v := os.environ.get("SNAPVOTE_PROPOSAL_THRESHOLD"):
            self.proposal_threshold = _as_int(v, "SNAPVOTE_PROPOSAL_THRESHOLD")


@dataclass
class TimelockConfig:
    """[timelock] section."""
    min_delay: int = constants.MIN_DELAY
    # Drop the deployer's admin role once governance roles are wired
    revoke_deployer_admin: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelockConfig":
        return cls(
            min_delay=_as_int(data.get("min_delay", cls.min_delay), "timelock.min_delay"),
            revoke_deployer_admin=data.get("revoke_deployer_admin", True),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("SNAPVOTE_MIN_DELAY"):
            self.min_delay = _as_int(v, "SNAPVOTE_MIN_DELAY")


@dataclass
class AirdropConfig:
    """[airdrop] section. Recipients map address → amount."""
    enabled: bool = False
    recipients: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AirdropConfig":
        recipients = {}
        for address, amount in data.get("recipients", {}).items():
            if not is_address(address):
                raise ConfigurationError(f"Invalid airdrop recipient {address!r}")
            recipients[to_checksum_address(address)] = _as_int(amount, f"airdrop.recipients.{address}")
        return cls(enabled=data.get("enabled", bool(recipients)), recipients=recipients)

    @property
    def total(self) -> int:
        return sum(self.recipients.values())


# -----------------------------------------------------------------------
# Top-level config
# -----------------------------------------------------------------------

@dataclass
class SnapvoteConfig:
    """
    Deployment configuration for one governance system.

    Loads every section of the TOML file and applies environment
    variable overrides.
    """
    network: NetworkConfig = field(default_factory=NetworkConfig)
    token: TokenConfig = field(default_factory=TokenConfig)
    governor: GovernorConfig = field(default_factory=GovernorConfig)
    timelock: TimelockConfig = field(default_factory=TimelockConfig)
    airdrop: AirdropConfig = field(default_factory=AirdropConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapvoteConfig":
        return cls(
            network=NetworkConfig.from_dict(data.get("network", {})),
            token=TokenConfig.from_dict(data.get("token", {})),
            governor=GovernorConfig.from_dict(data.get("governor", {})),
            timelock=TimelockConfig.from_dict(data.get("timelock", {})),
            airdrop=AirdropConfig.from_dict(data.get("airdrop", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "SnapvoteConfig":
        """
        Load configuration from a TOML file.

        A missing file yields defaults (with env overrides).
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {exc}") from exc

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.network.apply_env()
        self.token.apply_env()
        self.governor.apply_env()
        self.timelock.apply_env()

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if self.network.chain_id < 1:
            raise ConfigurationError("chain_id must be >= 1")
        if not self.network.name:
            raise ConfigurationError("network name cannot be empty")
        if self.token.initial_supply < 0:
            raise ConfigurationError("initial_supply cannot be negative")
        if self.governor.voting_delay < 0:
            raise ConfigurationError("voting_delay cannot be negative")
        if self.governor.voting_period < 1:
            raise ConfigurationError("voting_period must be >= 1")
        if not 0 <= self.governor.quorum_percentage <= constants.QUORUM_DENOMINATOR:
            raise ConfigurationError(
                f"quorum_percentage must be within 0..{constants.QUORUM_DENOMINATOR}"
            )
        if self.governor.proposal_threshold < 0:
            raise ConfigurationError("proposal_threshold cannot be negative")
        if self.timelock.min_delay < 0:
            raise ConfigurationError("min_delay cannot be negative")
        if self.airdrop.enabled and self.airdrop.total > self.token.initial_supply:
            raise ConfigurationError(
                f"Airdrop total {self.airdrop.total} exceeds initial supply "
                f"{self.token.initial_supply}"
            )
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics and deployment records)."""
        return {
            "network": {
                "name": self.network.name,
                "chain_id": self.network.chain_id,
                "deployments_dir": self.network.deployments_dir,
                "seconds_per_block": self.network.seconds_per_block,
            },
            "token": {
                "name": self.token.name,
                "symbol": self.token.symbol,
                "initial_supply": str(self.token.initial_supply),
            },
            "governor": {
                "name": self.governor.name,
                "voting_delay": self.governor.voting_delay,
                "voting_period": self.governor.voting_period,
                "quorum_percentage": self.governor.quorum_percentage,
                "proposal_threshold": str(self.governor.proposal_threshold),
            },
            "timelock": {
                "min_delay": self.timelock.min_delay,
                "revoke_deployer_admin": self.timelock.revoke_deployer_admin,
            },
            "airdrop": {
                "enabled": self.airdrop.enabled,
                "recipients": len(self.airdrop.recipients),
                "total": str(self.airdrop.total),
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> SnapvoteConfig:
    """
    Load and validate deployment configuration.

    Resolution order:
        1. Explicit *path* argument
        2. SNAPVOTE_CONFIG env var
        3. ./snapvote.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("SNAPVOTE_CONFIG", "snapvote.toml")

    cfg = SnapvoteConfig.from_file(path)
    cfg.validate()
    return cfg
