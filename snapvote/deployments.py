"""
Deployment Address Store

Persists contract addresses per network in
``<deployments_dir>/<network>-addresses.json`` so later steps of a
deployment flow can find contracts deployed by earlier ones.
"""

import json
from pathlib import Path
from typing import Dict, Optional

from eth_utils import is_address, to_checksum_address

from .constants import SNAPVOTE_DEPLOYMENTS_DIR, SNAPVOTE_NETWORK
from .exceptions import ConfigurationError, SnapvoteError
from .logger import get_logger

logger = get_logger(__name__)


class DeploymentNotFound(SnapvoteError):
    """No address recorded under the requested name for this network."""


def deployments_file(network: Optional[str] = None, directory: Optional[str] = None) -> Path:
    network = network or str(SNAPVOTE_NETWORK)
    directory = directory or str(SNAPVOTE_DEPLOYMENTS_DIR)
    return Path(directory) / f"{network}-addresses.json"


def load_deployments(network: Optional[str] = None, directory: Optional[str] = None) -> Dict[str, str]:
    """All recorded ``name → address`` pairs (empty if nothing was saved yet)."""
    path = deployments_file(network, directory)
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Corrupt deployments file {path}: {exc}") from exc


def _write(path: Path, deployments: Dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(deployments, f, indent=2)


def save_deployment(
    name: str,
    address: str,
    network: Optional[str] = None,
    directory: Optional[str] = None,
) -> None:
    if not is_address(address):
        raise ConfigurationError(f"Refusing to save invalid address {address!r} for {name}")
    deployments = load_deployments(network, directory)
    deployments[name] = to_checksum_address(address)
    path = deployments_file(network, directory)
    _write(path, deployments)
    logger.info(f"Saved {name} → {deployments[name]} in {path}")


def get_deployment(name: str, network: Optional[str] = None, directory: Optional[str] = None) -> str:
    address = load_deployments(network, directory).get(name)
    if not address:
        raise DeploymentNotFound(
            f'Deployment "{name}" not found for network '
            f'"{network or SNAPVOTE_NETWORK}". Deploy it first.'
        )
    return address


def clear_deployments(network: Optional[str] = None, directory: Optional[str] = None) -> None:
    path = deployments_file(network, directory)
    if path.exists():
        path.unlink()
        logger.warning(f"Cleared deployments in {path}")
