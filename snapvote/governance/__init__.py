"""
Snapvote On-Chain Governance

Provides:
  - Role / AccessControl                              (access.py)
  - ProposalState / Proposal / proposal hashing       (proposals.py)
  - VoteType / ProposalVote / QuorumFraction          (voting.py)
  - TimelockController / OperationState               (execution.py)
  - Governor                                          (governor.py)
"""

from .access import (
    AccessControl,
    AccessControlError,
    BadConfirmation,
    MissingRole,
    Role,
    RoleGranted,
    RoleRevoked,
    UnknownRole,
)
from .proposals import (
    DuplicateProposal,
    GovernorError,
    GovernorInvalidProposalLength,
    GovernorInvalidQuorumFraction,
    GovernorInvalidVotingPeriod,
    GovernorNonexistentProposal,
    GovernorOnlyExecutor,
    GovernorRestrictedProposer,
    GovernorUnableToCancel,
    GovernorUnexpectedProposalState,
    InsufficientProposerVotes,
    Proposal,
    ProposalState,
    hash_description,
    hash_proposal,
    timelock_salt,
)
from .voting import (
    COUNTING_MODE,
    GovernorAlreadyCastVote,
    GovernorInvalidVoteType,
    ProposalVote,
    QuorumFraction,
    VoteType,
)
from .execution import (
    CallExecuted,
    CallSalt,
    CallScheduled,
    Cancelled,
    InsufficientDelay,
    InvalidOperationLength,
    MinDelayChange,
    OperationAlreadyScheduled,
    OperationNotPending,
    OperationNotReady,
    OperationState,
    PredecessorNotExecuted,
    TimelockController,
    TimelockError,
    UnauthorizedCaller,
    UnderlyingCallReverted,
    hash_operation,
    hash_operation_batch,
)
from .governor import (
    Governor,
    ProposalCanceled,
    ProposalCreated,
    ProposalExecuted,
    ProposalQueued,
    VoteCast,
)

__all__ = [
    # Access control
    "AccessControl",
    "AccessControlError",
    "BadConfirmation",
    "MissingRole",
    "Role",
    "RoleGranted",
    "RoleRevoked",
    "UnknownRole",
    # Proposals
    "DuplicateProposal",
    "GovernorError",
    "GovernorInvalidProposalLength",
    "GovernorInvalidQuorumFraction",
    "GovernorInvalidVotingPeriod",
    "GovernorNonexistentProposal",
    "GovernorOnlyExecutor",
    "GovernorRestrictedProposer",
    "GovernorUnableToCancel",
    "GovernorUnexpectedProposalState",
    "InsufficientProposerVotes",
    "Proposal",
    "ProposalState",
    "hash_description",
    "hash_proposal",
    "timelock_salt",
    # Voting
    "COUNTING_MODE",
    "GovernorAlreadyCastVote",
    "GovernorInvalidVoteType",
    "ProposalVote",
    "QuorumFraction",
    "VoteType",
    # Execution
    "CallExecuted",
    "CallSalt",
    "CallScheduled",
    "Cancelled",
    "InsufficientDelay",
    "InvalidOperationLength",
    "MinDelayChange",
    "OperationAlreadyScheduled",
    "OperationNotPending",
    "OperationNotReady",
    "OperationState",
    "PredecessorNotExecuted",
    "TimelockController",
    "TimelockError",
    "UnauthorizedCaller",
    "UnderlyingCallReverted",
    "hash_operation",
    "hash_operation_batch",
    # Governor
    "Governor",
    "ProposalCanceled",
    "ProposalCreated",
    "ProposalExecuted",
    "ProposalQueued",
    "VoteCast",
]
