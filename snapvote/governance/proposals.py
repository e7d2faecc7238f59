"""
Governance Proposals

Defines proposal lifecycle states, the Proposal record, and the hashing
rules that tie a proposal to its timelock operation:

  - proposal id = uint256(keccak256(abi.encode(targets, values, calldatas, descriptionHash)))
  - timelock salt = bytes20(governor) XOR descriptionHash
"""

import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence

from eth_utils import to_checksum_address

from ..crypto.hashing import abi_hash, keccak_text, to_bytes32
from ..exceptions import (
    AuthorizationError,
    ReplayError,
    SnapvoteError,
    StateError,
    ValidationError,
)
from ..logger import get_logger

logger = get_logger(__name__)

_PROPOSER_SUFFIX = re.compile(r"#proposer=0x([0-9a-fA-F]{40})$")


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class GovernorError(SnapvoteError):
    """Base governor exception."""


class GovernorNonexistentProposal(GovernorError, StateError):
    """Proposal id is unknown."""


class GovernorUnexpectedProposalState(GovernorError, StateError):
    """Operation is not allowed in the proposal's current state."""


class GovernorInvalidProposalLength(GovernorError, ValidationError):
    """Empty proposal, or targets / values / calldatas lengths differ."""


class DuplicateProposal(GovernorError, ReplayError):
    """A proposal with the same id already exists."""


class InsufficientProposerVotes(GovernorError, ValidationError):
    """Proposer's votes are below the proposal threshold."""


class GovernorRestrictedProposer(GovernorError, AuthorizationError):
    """Description reserves the proposal for a different proposer."""


class GovernorUnableToCancel(GovernorError, AuthorizationError):
    """Caller may not cancel the proposal in its current state."""


class GovernorOnlyExecutor(GovernorError, AuthorizationError):
    """Governance-only setter called from outside the timelock."""


class GovernorInvalidVotingPeriod(GovernorError, ValidationError):
    """Voting period must be positive."""


class GovernorInvalidQuorumFraction(GovernorError, ValidationError):
    """Quorum numerator exceeds the denominator."""


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class ProposalState(IntEnum):
    """Lifecycle state, numbered as Governor clients expect."""
    PENDING = 0
    ACTIVE = 1
    CANCELED = 2
    DEFEATED = 3
    SUCCEEDED = 4
    QUEUED = 5
    EXECUTED = 7


# ══════════════════════════════════════════════════════════════════════
#  IDENTIFIERS
# ══════════════════════════════════════════════════════════════════════

def hash_description(description: str) -> bytes:
    return keccak_text(description)


def hash_proposal(
    targets: Sequence[str],
    values: Sequence[int],
    calldatas: Sequence[bytes],
    description_hash: bytes,
) -> int:
    """Deterministic proposal id shared by the governor and its clients."""
    digest = abi_hash(
        ["address[]", "uint256[]", "bytes[]", "bytes32"],
        [
            [to_checksum_address(t) for t in targets],
            list(values),
            [bytes(c) for c in calldatas],
            to_bytes32(description_hash),
        ],
    )
    return int.from_bytes(digest, "big")


def timelock_salt(governor: str, description_hash: bytes) -> bytes:
    """Salt that keeps identical proposals from different governors apart."""
    prefix = bytes.fromhex(to_checksum_address(governor)[2:]).ljust(32, b"\x00")
    return bytes(a ^ b for a, b in zip(prefix, to_bytes32(description_hash)))


def validate_proposal_shape(
    targets: Sequence[str], values: Sequence[int], calldatas: Sequence[bytes]
) -> None:
    if not targets or not (len(targets) == len(values) == len(calldatas)):
        raise GovernorInvalidProposalLength(
            f"targets={len(targets)} values={len(values)} calldatas={len(calldatas)}"
        )


def is_valid_description_for_proposer(description: str, proposer: str) -> bool:
    """
    A description ending in ``#proposer=0x<address>`` may only be proposed
    by that address. Any other description is unrestricted.
    """
    match = _PROPOSER_SUFFIX.search(description)
    if match is None:
        return True
    return match.group(1).lower() == to_checksum_address(proposer)[2:].lower()


# ══════════════════════════════════════════════════════════════════════
#  PROPOSAL
# ══════════════════════════════════════════════════════════════════════

@dataclass
class Proposal:
    """
    Governor proposal record.

    Fields:
        id:            Hash-derived proposal id
        proposer:      Account that created the proposal
        targets:       Call targets
        values:        Native value per call
        calldatas:     Encoded call per target
        description:   Human-readable description
        vote_start:    Snapshot timepoint (votes counted as of this block)
        vote_end:      Deadline timepoint (voting closes at this block)
        eta:           Timelock ready timestamp once queued
        timelock_id:   Timelock operation id once queued
    """
    id: int
    proposer: str
    targets: List[str]
    values: List[int]
    calldatas: List[bytes]
    description: str
    vote_start: int
    vote_end: int
    executed: bool = False
    canceled: bool = False
    eta: int = 0
    timelock_id: Optional[bytes] = None
    _history: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    @property
    def description_hash(self) -> bytes:
        return hash_description(self.description)

    @property
    def is_queued(self) -> bool:
        return self.timelock_id is not None

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    def record(self, action: str, timepoint: int, **details: Any) -> None:
        self._history.append({"action": action, "timepoint": timepoint, **details})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "proposer": self.proposer,
            "targets": list(self.targets),
            "values": [str(v) for v in self.values],
            "calldatas": ["0x" + c.hex() for c in self.calldatas],
            "description": self.description,
            "descriptionHash": "0x" + self.description_hash.hex(),
            "voteStart": self.vote_start,
            "voteEnd": self.vote_end,
            "executed": self.executed,
            "canceled": self.canceled,
            "eta": self.eta,
            "timelockId": "0x" + self.timelock_id.hex() if self.timelock_id else None,
            "historyLength": len(self._history),
        }

    def __repr__(self) -> str:
        short = hex(self.id)[:12]
        return f"<Proposal {short}… by {self.proposer} calls={len(self.targets)}>"
