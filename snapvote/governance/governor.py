"""
Governor — Proposal Lifecycle Engine

Token-weighted governance over a timelock:

  propose → (voting delay) → vote → (voting period) → queue on timelock
          → (timelock delay) → execute

Voting power is read from the token at each proposal's snapshot block.
Every successful proposal executes through the timelock, which is the
only account with authority over governed contracts.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from eth_utils import to_checksum_address

from ..chain import Chain
from ..constants import (
    GOVERNOR_NAME,
    PROPOSAL_THRESHOLD,
    QUORUM_DENOMINATOR,
    QUORUM_PERCENTAGE,
    VOTING_DELAY,
    VOTING_PERIOD,
    ZERO_BYTES32,
)
from ..contracts.base import Contract, transaction
from ..events import Event
from ..logger import get_logger
from ..tokens.governance_token import GovernanceToken
from .execution import OperationState, TimelockController, hash_operation_batch
from .proposals import (
    DuplicateProposal,
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
    is_valid_description_for_proposer,
    timelock_salt,
    validate_proposal_shape,
)
from .voting import COUNTING_MODE, ProposalVote, QuorumFraction

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProposalCreated(Event):
    name = "ProposalCreated"
    proposal_id: int
    proposer: str
    targets: Tuple[str, ...]
    values: Tuple[int, ...]
    signatures: Tuple[str, ...]
    calldatas: Tuple[bytes, ...]
    vote_start: int
    vote_end: int
    description: str


@dataclass(frozen=True)
class VoteCast(Event):
    name = "VoteCast"
    voter: str
    proposal_id: int
    support: int
    weight: int
    reason: str


@dataclass(frozen=True)
class ProposalQueued(Event):
    name = "ProposalQueued"
    proposal_id: int
    eta: int


@dataclass(frozen=True)
class ProposalExecuted(Event):
    name = "ProposalExecuted"
    proposal_id: int


@dataclass(frozen=True)
class ProposalCanceled(Event):
    name = "ProposalCanceled"
    proposal_id: int


@dataclass(frozen=True)
class VotingDelaySet(Event):
    name = "VotingDelaySet"
    old_voting_delay: int
    new_voting_delay: int


@dataclass(frozen=True)
class VotingPeriodSet(Event):
    name = "VotingPeriodSet"
    old_voting_period: int
    new_voting_period: int


@dataclass(frozen=True)
class ProposalThresholdSet(Event):
    name = "ProposalThresholdSet"
    old_proposal_threshold: int
    new_proposal_threshold: int


@dataclass(frozen=True)
class QuorumNumeratorUpdated(Event):
    name = "QuorumNumeratorUpdated"
    old_quorum_numerator: int
    new_quorum_numerator: int


@dataclass(frozen=True)
class CancellerAdded(Event):
    name = "CancellerAdded"
    account: str


@dataclass(frozen=True)
class CancellerRemoved(Event):
    name = "CancellerRemoved"
    account: str


# ══════════════════════════════════════════════════════════════════════
#  GOVERNOR
# ══════════════════════════════════════════════════════════════════════

class Governor(Contract):
    """
    Governance engine bound to one token and one timelock.

    Responsibilities:
        - Create proposals and fix their snapshot / deadline
        - Tally snapshot-weighted votes
        - Derive proposal state from the clock, the tally and the timelock
        - Queue, execute and cancel through the timelock
    """

    FUNCTIONS = {
        "propose(address[],uint256[],bytes[],string)": "propose",
        "castVote(uint256,uint8)": "cast_vote",
        "castVoteWithReason(uint256,uint8,string)": "cast_vote_with_reason",
        "queue(address[],uint256[],bytes[],bytes32)": "queue",
        "execute(address[],uint256[],bytes[],bytes32)": "execute",
        "cancel(address[],uint256[],bytes[],bytes32)": "cancel",
        "setVotingDelay(uint48)": "set_voting_delay",
        "setVotingPeriod(uint32)": "set_voting_period",
        "setProposalThreshold(uint256)": "set_proposal_threshold",
        "updateQuorumNumerator(uint256)": "update_quorum_numerator",
        "addCanceller(address)": "add_canceller",
        "removeCanceller(address)": "remove_canceller",
        "state(uint256)": "state",
        "proposalVotes(uint256)": "proposal_votes",
        "hasVoted(uint256,address)": "has_voted",
        "votingDelay()": "voting_delay",
        "votingPeriod()": "voting_period",
        "proposalThreshold()": "proposal_threshold",
        "quorum(uint256)": "quorum",
        "quorumNumerator()": "quorum_numerator",
    }
    LINKS = ("token", "timelock")

    CLOCK_MODE = GovernanceToken.CLOCK_MODE
    COUNTING_MODE = COUNTING_MODE

    def __init__(
        self,
        chain: Chain,
        deployer: str,
        token: GovernanceToken,
        timelock: TimelockController,
        voting_delay: int = VOTING_DELAY,
        voting_period: int = VOTING_PERIOD,
        quorum_percentage: int = QUORUM_PERCENTAGE,
        proposal_threshold: int = PROPOSAL_THRESHOLD,
        name: str = GOVERNOR_NAME,
    ):
        if voting_period <= 0:
            raise GovernorInvalidVotingPeriod("Voting period must be positive")
        super().__init__(chain, deployer)
        self.token = token
        self.timelock = timelock
        self.name = name

        self._voting_delay = voting_delay
        self._voting_period = voting_period
        self._proposal_threshold = proposal_threshold
        self._quorum = QuorumFraction(quorum_percentage, QUORUM_DENOMINATOR, token.clock())

        self._proposals: Dict[int, Proposal] = {}
        self._votes: Dict[int, ProposalVote] = {}
        self._cancellers: Set[str] = set()

        logger.info(
            f"{name} deployed at {self.address}: delay={voting_delay} "
            f"period={voting_period} quorum={quorum_percentage}% "
            f"threshold={proposal_threshold}"
        )

    # ── Settings ──────────────────────────────────────────────────────

    def clock(self) -> int:
        return self.token.clock()

    def voting_delay(self) -> int:
        return self._voting_delay

    def voting_period(self) -> int:
        return self._voting_period

    def proposal_threshold(self) -> int:
        return self._proposal_threshold

    def quorum_numerator(self, timepoint: Optional[int] = None) -> int:
        return self._quorum.numerator(timepoint)

    def quorum_denominator(self) -> int:
        return self._quorum.denominator

    def quorum(self, timepoint: int) -> int:
        """Votes (for + abstain) needed for a proposal snapshotted at *timepoint*."""
        return self._quorum.quorum(self.token.get_past_total_supply(timepoint), timepoint)

    def get_votes(self, account: str, timepoint: int) -> int:
        return self.token.get_past_votes(account, timepoint)

    def is_canceller(self, account: str) -> bool:
        return to_checksum_address(account) in self._cancellers

    # ── Proposal queries ──────────────────────────────────────────────

    hash_proposal = staticmethod(hash_proposal)

    def get_proposal_id(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description_hash: bytes,
    ) -> int:
        return hash_proposal(targets, values, calldatas, description_hash)

    def get_proposal(self, proposal_id: int) -> Proposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise GovernorNonexistentProposal(f"Unknown proposal {proposal_id}")
        return proposal

    def proposal_snapshot(self, proposal_id: int) -> int:
        return self.get_proposal(proposal_id).vote_start

    def proposal_deadline(self, proposal_id: int) -> int:
        return self.get_proposal(proposal_id).vote_end

    def proposal_proposer(self, proposal_id: int) -> str:
        return self.get_proposal(proposal_id).proposer

    def proposal_eta(self, proposal_id: int) -> int:
        return self.get_proposal(proposal_id).eta

    def proposal_needs_queuing(self, proposal_id: int) -> bool:
        return True

    def proposal_votes(self, proposal_id: int) -> Tuple[int, int, int]:
        """``(against, for, abstain)`` totals."""
        self.get_proposal(proposal_id)
        return self._votes[proposal_id].as_tuple()

    def has_voted(self, proposal_id: int, account: str) -> bool:
        self.get_proposal(proposal_id)
        return self._votes[proposal_id].has_voted(to_checksum_address(account))

    def state(self, proposal_id: int) -> ProposalState:
        """
        Current lifecycle state.

        Only EXECUTED and CANCELED are stored; every other state is derived
        from the clock, the tally and the timelock operation.
        """
        proposal = self.get_proposal(proposal_id)
        if proposal.executed:
            return ProposalState.EXECUTED
        if proposal.canceled:
            return ProposalState.CANCELED

        now = self.clock()
        if now < proposal.vote_start:
            return ProposalState.PENDING
        if now < proposal.vote_end:
            return ProposalState.ACTIVE

        tally = self._votes[proposal_id]
        if not tally.quorum_reached(self.quorum(proposal.vote_start)) or not tally.vote_succeeded():
            return ProposalState.DEFEATED
        if not proposal.is_queued:
            return ProposalState.SUCCEEDED

        op_state = self.timelock.get_operation_state(proposal.timelock_id)
        if op_state == OperationState.DONE:
            return ProposalState.EXECUTED
        if op_state in (OperationState.WAITING, OperationState.READY):
            return ProposalState.QUEUED
        return ProposalState.CANCELED

    def _validate_state(self, proposal_id: int, *allowed: ProposalState) -> ProposalState:
        current = self.state(proposal_id)
        if current not in allowed:
            raise GovernorUnexpectedProposalState(
                f"Proposal {proposal_id} is {current.name}, "
                f"expected {' or '.join(s.name for s in allowed)}"
            )
        return current

    # ── Proposing ─────────────────────────────────────────────────────

    @transaction
    def propose(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description: str,
        *,
        sender: str,
    ) -> int:
        """Create a proposal. Returns its id (also carried by ``ProposalCreated``)."""
        if not is_valid_description_for_proposer(description, sender):
            raise GovernorRestrictedProposer(f"{sender} may not submit this proposal")

        now = self.clock()
        votes = self.token.get_past_votes(sender, now)
        if votes < self._proposal_threshold:
            raise InsufficientProposerVotes(
                f"{sender} has {votes} votes, threshold is {self._proposal_threshold}"
            )

        validate_proposal_shape(targets, values, calldatas)
        targets = [to_checksum_address(t) for t in targets]
        calldatas = [bytes(c) for c in calldatas]
        proposal_id = hash_proposal(targets, values, calldatas, hash_description(description))
        if proposal_id in self._proposals:
            raise DuplicateProposal(
                f"Proposal {proposal_id} already exists ({self.state(proposal_id).name})"
            )

        vote_start = now + self._voting_delay
        vote_end = vote_start + self._voting_period
        proposal = Proposal(
            id=proposal_id,
            proposer=sender,
            targets=targets,
            values=list(values),
            calldatas=calldatas,
            description=description,
            vote_start=vote_start,
            vote_end=vote_end,
        )
        proposal.record("created", now)
        self._proposals[proposal_id] = proposal
        self._votes[proposal_id] = ProposalVote()

        self._emit(ProposalCreated(
            proposal_id=proposal_id,
            proposer=sender,
            targets=tuple(targets),
            values=tuple(values),
            signatures=tuple("" for _ in targets),
            calldatas=tuple(calldatas),
            vote_start=vote_start,
            vote_end=vote_end,
            description=description,
        ))
        logger.info(
            f"Proposal {hex(proposal_id)[:12]}… created by {sender}: "
            f"snapshot={vote_start} deadline={vote_end}"
        )
        return proposal_id

    # ── Voting ────────────────────────────────────────────────────────

    def _cast_vote(self, proposal_id: int, voter: str, support: int, reason: str) -> int:
        self._validate_state(proposal_id, ProposalState.ACTIVE)
        proposal = self._proposals[proposal_id]
        weight = self.token.get_past_votes(voter, proposal.vote_start)
        vote_type = self._votes[proposal_id].count_vote(voter, support, weight)
        self._emit(VoteCast(
            voter=voter, proposal_id=proposal_id, support=int(vote_type),
            weight=weight, reason=reason,
        ))
        logger.info(
            f"Vote on {hex(proposal_id)[:12]}…: {voter} {vote_type.name} weight={weight}"
        )
        return weight

    @transaction
    def cast_vote(self, proposal_id: int, support: int, *, sender: str) -> int:
        return self._cast_vote(proposal_id, sender, support, "")

    @transaction
    def cast_vote_with_reason(self, proposal_id: int, support: int, reason: str, *, sender: str) -> int:
        return self._cast_vote(proposal_id, sender, support, reason)

    # ── Timelock integration ──────────────────────────────────────────

    def _salt(self, description_hash: bytes) -> bytes:
        return timelock_salt(self.address, description_hash)

    @transaction
    def queue(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description_hash: bytes,
        *,
        sender: str,
    ) -> int:
        """Schedule a succeeded proposal on the timelock. Anyone may call."""
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        self._validate_state(proposal_id, ProposalState.SUCCEEDED)

        salt = self._salt(description_hash)
        delay = self.timelock.get_min_delay()
        operation_id = hash_operation_batch(targets, values, calldatas, ZERO_BYTES32, salt)
        self.timelock.schedule_batch(
            targets, values, calldatas, ZERO_BYTES32, salt, delay, sender=self.address,
        )

        proposal = self._proposals[proposal_id]
        proposal.timelock_id = operation_id
        proposal.eta = self.timelock.get_timestamp(operation_id)
        proposal.record("queued", self.clock(), eta=proposal.eta)
        self._emit(ProposalQueued(proposal_id=proposal_id, eta=proposal.eta))
        logger.info(f"Proposal {hex(proposal_id)[:12]}… queued, eta={proposal.eta}")
        return proposal_id

    @transaction
    def execute(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description_hash: bytes,
        *,
        sender: str,
    ) -> int:
        """
        Execute a queued proposal through the timelock.

        Timelock failures (not yet ready, a reverting call) propagate and
        leave the proposal QUEUED.
        """
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        self._validate_state(proposal_id, ProposalState.QUEUED)

        self.timelock.execute_batch(
            targets, values, calldatas, ZERO_BYTES32, self._salt(description_hash),
            sender=self.address,
        )

        proposal = self._proposals[proposal_id]
        proposal.executed = True
        proposal.record("executed", self.clock(), executor=sender)
        self._emit(ProposalExecuted(proposal_id=proposal_id))
        logger.info(f"Proposal {hex(proposal_id)[:12]}… executed by {sender}")
        return proposal_id

    @transaction
    def cancel(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        calldatas: Sequence[bytes],
        description_hash: bytes,
        *,
        sender: str,
    ) -> int:
        """
        Cancel a proposal.

        Before queuing, the proposer or a canceller may cancel. Once queued,
        only a canceller may, or the proposer if their current votes have
        dropped below the proposal threshold.
        """
        proposal_id = hash_proposal(targets, values, calldatas, description_hash)
        current = self._validate_state(
            proposal_id,
            ProposalState.PENDING,
            ProposalState.ACTIVE,
            ProposalState.SUCCEEDED,
            ProposalState.QUEUED,
        )
        proposal = self._proposals[proposal_id]
        is_canceller = sender in self._cancellers

        if current == ProposalState.QUEUED:
            proposer_lost_support = (
                sender == proposal.proposer
                and self.token.get_votes(proposal.proposer) < self._proposal_threshold
            )
            if not (is_canceller or proposer_lost_support):
                raise GovernorUnableToCancel(
                    f"{sender} cannot cancel queued proposal {proposal_id}"
                )
        elif not (is_canceller or sender == proposal.proposer):
            raise GovernorUnableToCancel(
                f"{sender} cannot cancel {current.name} proposal {proposal_id}"
            )

        proposal.canceled = True
        if proposal.is_queued and self.timelock.is_operation_pending(proposal.timelock_id):
            self.timelock.cancel(proposal.timelock_id, sender=self.address)
        proposal.record("canceled", self.clock(), by=sender, state=current.name)
        self._emit(ProposalCanceled(proposal_id=proposal_id))
        logger.warning(f"Proposal {hex(proposal_id)[:12]}… canceled by {sender} ({current.name})")
        return proposal_id

    # ── Governance-only settings ──────────────────────────────────────

    def _only_governance(self, sender: str) -> None:
        if sender != self.timelock.address:
            raise GovernorOnlyExecutor(f"{sender} is not the governance executor")

    @transaction
    def set_voting_delay(self, new_voting_delay: int, *, sender: str) -> None:
        self._only_governance(sender)
        old, self._voting_delay = self._voting_delay, new_voting_delay
        self._emit(VotingDelaySet(old_voting_delay=old, new_voting_delay=new_voting_delay))
        logger.info(f"Voting delay {old} → {new_voting_delay}")

    @transaction
    def set_voting_period(self, new_voting_period: int, *, sender: str) -> None:
        self._only_governance(sender)
        if new_voting_period <= 0:
            raise GovernorInvalidVotingPeriod("Voting period must be positive")
        old, self._voting_period = self._voting_period, new_voting_period
        self._emit(VotingPeriodSet(old_voting_period=old, new_voting_period=new_voting_period))
        logger.info(f"Voting period {old} → {new_voting_period}")

    @transaction
    def set_proposal_threshold(self, new_proposal_threshold: int, *, sender: str) -> None:
        self._only_governance(sender)
        old, self._proposal_threshold = self._proposal_threshold, new_proposal_threshold
        self._emit(ProposalThresholdSet(
            old_proposal_threshold=old, new_proposal_threshold=new_proposal_threshold,
        ))
        logger.info(f"Proposal threshold {old} → {new_proposal_threshold}")

    @transaction
    def update_quorum_numerator(self, new_quorum_numerator: int, *, sender: str) -> None:
        self._only_governance(sender)
        old = self._quorum.numerator()
        # Takes effect from the next block, like token checkpoints
        self._quorum.update(new_quorum_numerator, self.clock() + 1)
        self._emit(QuorumNumeratorUpdated(
            old_quorum_numerator=old, new_quorum_numerator=new_quorum_numerator,
        ))
        logger.info(f"Quorum numerator {old} → {new_quorum_numerator}")

    @transaction
    def add_canceller(self, account: str, *, sender: str) -> None:
        self._only_governance(sender)
        account = to_checksum_address(account)
        if account not in self._cancellers:
            self._cancellers.add(account)
            self._emit(CancellerAdded(account=account))

    @transaction
    def remove_canceller(self, account: str, *, sender: str) -> None:
        self._only_governance(sender)
        account = to_checksum_address(account)
        if account in self._cancellers:
            self._cancellers.discard(account)
            self._emit(CancellerRemoved(account=account))

    # ── Serialization ─────────────────────────────────────────────────

    def proposals(self) -> List[Proposal]:
        return list(self._proposals.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "token": self.token.address,
            "timelock": self.timelock.address,
            "votingDelay": self._voting_delay,
            "votingPeriod": self._voting_period,
            "proposalThreshold": str(self._proposal_threshold),
            "quorumNumerator": self._quorum.numerator(),
            "proposals": len(self._proposals),
            "cancellers": sorted(self._cancellers),
        }
