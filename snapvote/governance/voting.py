"""
Vote Counting & Quorum

Implements:
  - 1 delegated token = 1 vote, weighted at the proposal snapshot
  - Vote types: Against / For / Abstain (abstain counts toward quorum)
  - Quorum: for + abstain ≥ fraction of past total supply
  - Success: for strictly greater than against
  - Checkpointed quorum numerator, so old proposals keep their quorum
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Set, Tuple

from ..constants import (
    QUORUM_DENOMINATOR,
    QUORUM_PERCENTAGE,
    VOTE_ABSTAIN,
    VOTE_AGAINST,
    VOTE_FOR,
)
from ..exceptions import ReplayError, ValidationError
from ..logger import get_logger
from ..tokens.checkpoints import Trace
from .proposals import GovernorError, GovernorInvalidQuorumFraction

logger = get_logger(__name__)

COUNTING_MODE = "support=bravo&quorum=for,abstain"


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class GovernorAlreadyCastVote(GovernorError, ReplayError):
    """Voter already cast a vote on this proposal."""


class GovernorInvalidVoteType(GovernorError, ValidationError):
    """Support value is not Against / For / Abstain."""


# ══════════════════════════════════════════════════════════════════════
#  VOTE DATA
# ══════════════════════════════════════════════════════════════════════

class VoteType(IntEnum):
    AGAINST = VOTE_AGAINST
    FOR = VOTE_FOR
    ABSTAIN = VOTE_ABSTAIN

    @classmethod
    def parse(cls, support: int) -> "VoteType":
        try:
            return cls(support)
        except ValueError as exc:
            raise GovernorInvalidVoteType(f"Invalid vote type {support!r}") from exc


@dataclass
class ProposalVote:
    """Running tally for one proposal."""
    against_votes: int = 0
    for_votes: int = 0
    abstain_votes: int = 0
    voters: Set[str] = field(default_factory=set)

    def has_voted(self, account: str) -> bool:
        return account in self.voters

    def count_vote(self, voter: str, support: int, weight: int) -> VoteType:
        """
        Record *voter*'s ballot. A second ballot from the same voter is
        rejected; zero-weight ballots are recorded like any other.
        """
        vote_type = VoteType.parse(support)
        if voter in self.voters:
            raise GovernorAlreadyCastVote(f"{voter} has already voted")
        self.voters.add(voter)
        if vote_type == VoteType.AGAINST:
            self.against_votes += weight
        elif vote_type == VoteType.FOR:
            self.for_votes += weight
        else:
            self.abstain_votes += weight
        return vote_type

    @property
    def quorum_votes(self) -> int:
        return self.for_votes + self.abstain_votes

    def quorum_reached(self, quorum: int) -> bool:
        return self.quorum_votes >= quorum

    def vote_succeeded(self) -> bool:
        return self.for_votes > self.against_votes

    def as_tuple(self) -> Tuple[int, int, int]:
        return self.against_votes, self.for_votes, self.abstain_votes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "againstVotes": str(self.against_votes),
            "forVotes": str(self.for_votes),
            "abstainVotes": str(self.abstain_votes),
            "voters": len(self.voters),
        }


# ══════════════════════════════════════════════════════════════════════
#  QUORUM FRACTION
# ══════════════════════════════════════════════════════════════════════

class QuorumFraction:
    """Quorum as a checkpointed fraction of past total supply."""

    def __init__(self, numerator: int = QUORUM_PERCENTAGE, denominator: int = QUORUM_DENOMINATOR, timepoint: int = 0):
        self.denominator = denominator
        self._history = Trace()
        self.update(numerator, timepoint)

    def numerator(self, timepoint: int = None) -> int:
        if timepoint is None:
            return self._history.latest()
        return self._history.upper_lookup(timepoint)

    def update(self, new_numerator: int, timepoint: int) -> Tuple[int, int]:
        if new_numerator > self.denominator:
            raise GovernorInvalidQuorumFraction(
                f"Quorum numerator {new_numerator} > denominator {self.denominator}"
            )
        return self._history.push(timepoint, new_numerator)

    def quorum(self, past_total_supply: int, timepoint: int) -> int:
        return past_total_supply * self.numerator(timepoint) // self.denominator
