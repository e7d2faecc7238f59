"""
Snapvote Governance Package

Core imports are lazily loaded so importing a submodule does not pull in
the whole contract set. For direct module access, import from submodules:

    from snapvote.chain import Chain
    from snapvote.governance import Governor, TimelockController
    from snapvote.tokens import GovernanceToken
    from snapvote.airdrop import MerkleAirdrop, StandardMerkleTree
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy attribute loading for the most used entry points."""
    if name == 'Chain':
        from .chain import Chain
        return Chain
    elif name == 'GovernanceToken':
        from .tokens import GovernanceToken
        return GovernanceToken
    elif name == 'TimelockController':
        from .governance import TimelockController
        return TimelockController
    elif name == 'Governor':
        from .governance import Governor
        return Governor
    elif name == 'MerkleAirdrop':
        from .airdrop import MerkleAirdrop
        return MerkleAirdrop
    elif name == 'deploy_governance_system':
        from .deploy import deploy_governance_system
        return deploy_governance_system
    raise AttributeError(f"module 'snapvote' has no attribute {name!r}")

__all__ = [
    'Chain',
    'GovernanceToken',
    'TimelockController',
    'Governor',
    'MerkleAirdrop',
    'deploy_governance_system',
]
