"""
Deployment Flow

Step-by-step deployment of a governance system onto a Chain:

  1. GovernanceToken (deployer self-delegates)
  2. TimelockController (deployer temporarily admin)
  3. Governor, then timelock roles: PROPOSER + CANCELLER → governor,
     EXECUTOR → anyone, deployer admin revoked
  4. Box owned by the timelock
  5. Optional MerkleAirdrop funded from the deployer's balance
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from eth_utils import to_checksum_address

from .airdrop.merkle import StandardMerkleTree
from .airdrop.merkle_airdrop import CLAIM_LEAF_ENCODING, MerkleAirdrop
from .chain import Chain
from .config.loader import GovernorConfig, SnapvoteConfig, TokenConfig
from .constants import MIN_DELAY, ZERO_ADDRESS
from .contracts.box import Box
from .deployments import save_deployment
from .governance.access import Role
from .governance.execution import TimelockController
from .governance.governor import Governor
from .logger import get_logger
from .tokens.governance_token import GovernanceToken

logger = get_logger(__name__)


def deploy_governance_token(
    chain: Chain,
    deployer: str,
    config: Optional[TokenConfig] = None,
    self_delegate: bool = True,
) -> GovernanceToken:
    config = config or TokenConfig()
    token = GovernanceToken(
        chain, deployer,
        name=config.name,
        symbol=config.symbol,
        initial_supply=config.initial_supply,
    )
    if self_delegate:
        token.delegate(deployer, sender=deployer)
    return token


def deploy_timelock(
    chain: Chain,
    deployer: str,
    min_delay: int = MIN_DELAY,
    admin: Optional[str] = None,
) -> TimelockController:
    """Timelock with no proposers or executors yet; *admin* (default deployer) wires them."""
    return TimelockController(
        chain, deployer,
        min_delay=min_delay,
        proposers=[],
        executors=[],
        admin=admin or deployer,
    )


def deploy_governor(
    chain: Chain,
    deployer: str,
    token: GovernanceToken,
    timelock: TimelockController,
    config: Optional[GovernorConfig] = None,
    revoke_deployer_admin: bool = True,
) -> Governor:
    """Deploy the governor and hand it the timelock's proposer and canceller roles."""
    config = config or GovernorConfig()
    governor = Governor(
        chain, deployer, token, timelock,
        voting_delay=config.voting_delay,
        voting_period=config.voting_period,
        quorum_percentage=config.quorum_percentage,
        proposal_threshold=config.proposal_threshold,
        name=config.name,
    )

    timelock.grant_role(Role.PROPOSER, governor.address, sender=deployer)
    timelock.grant_role(Role.CANCELLER, governor.address, sender=deployer)
    timelock.grant_role(Role.EXECUTOR, ZERO_ADDRESS, sender=deployer)
    if revoke_deployer_admin:
        timelock.revoke_role(Role.ADMIN, deployer, sender=deployer)
    logger.info(f"Timelock roles configured for governor {governor.address}")
    return governor


def deploy_box(chain: Chain, deployer: str, owner: str) -> Box:
    return chain.deploy(Box, deployer, initial_owner=owner)


def deploy_airdrop(
    chain: Chain,
    deployer: str,
    token: GovernanceToken,
    recipients: Dict[str, int],
    fund: bool = True,
) -> Tuple[MerkleAirdrop, StandardMerkleTree]:
    """
    Build the claim tree for *recipients* and deploy an airdrop for it.

    With *fund*, the deployer transfers the full allocation to the airdrop.
    """
    values = [(to_checksum_address(addr), amount) for addr, amount in recipients.items()]
    tree = StandardMerkleTree.of(values, CLAIM_LEAF_ENCODING)
    airdrop = MerkleAirdrop(chain, deployer, token, tree.root)
    if fund:
        total = sum(amount for _, amount in values)
        token.transfer(airdrop.address, total, sender=deployer)
        logger.info(f"Funded airdrop {airdrop.address} with {total} {token.symbol}")
    return airdrop, tree


# ══════════════════════════════════════════════════════════════════════
#  FULL SYSTEM
# ══════════════════════════════════════════════════════════════════════

@dataclass
class GovernanceSystem:
    """Handles to every contract of one deployed governance system."""
    chain: Chain
    deployer: str
    token: GovernanceToken
    timelock: TimelockController
    governor: Governor
    box: Box
    airdrop: Optional[MerkleAirdrop] = None
    merkle_tree: Optional[StandardMerkleTree] = None

    def addresses(self) -> Dict[str, str]:
        out = {
            "GovernanceToken": self.token.address,
            "TimeLock": self.timelock.address,
            "GovernorContract": self.governor.address,
            "Box": self.box.address,
        }
        if self.airdrop is not None:
            out["MerkleAirdrop"] = self.airdrop.address
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain.chain_id,
            "deployer": self.deployer,
            "addresses": self.addresses(),
            "governor": self.governor.to_dict(),
        }


def deploy_governance_system(
    deployer: str,
    chain: Optional[Chain] = None,
    config: Optional[SnapvoteConfig] = None,
    save: bool = False,
) -> GovernanceSystem:
    """
    Deploy token, timelock, governor, box and (if configured) airdrop.

    With *save*, every address is recorded in the deployments store for
    the configured network.
    """
    config = config or SnapvoteConfig()
    config.validate()
    deployer = to_checksum_address(deployer)
    if chain is None:
        chain = Chain(
            chain_id=config.network.chain_id,
            seconds_per_block=config.network.seconds_per_block,
        )

    token = deploy_governance_token(chain, deployer, config.token)
    timelock = deploy_timelock(chain, deployer, config.timelock.min_delay)
    governor = deploy_governor(
        chain, deployer, token, timelock, config.governor,
        revoke_deployer_admin=config.timelock.revoke_deployer_admin,
    )
    box = deploy_box(chain, deployer, timelock.address)

    airdrop = tree = None
    if config.airdrop.enabled and config.airdrop.recipients:
        airdrop, tree = deploy_airdrop(chain, deployer, token, config.airdrop.recipients)

    system = GovernanceSystem(
        chain=chain,
        deployer=deployer,
        token=token,
        timelock=timelock,
        governor=governor,
        box=box,
        airdrop=airdrop,
        merkle_tree=tree,
    )
    if save:
        for name, address in system.addresses().items():
            save_deployment(name, address, config.network.name, config.network.deployments_dir)

    logger.info(f"Governance system deployed on chain {chain.chain_id}")
    return system
