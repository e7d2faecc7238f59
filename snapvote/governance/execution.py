"""
Timelock Controller — Delayed Execution Queue

Implements:
  - schedule / schedule_batch: commit an operation hash with a ready time
  - execute / execute_batch: run every call as the timelock once ready
  - cancel: drop a pending operation
  - predecessor ordering between operations
  - update_delay: self-administered minimum delay
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from eth_utils import to_checksum_address

from ..chain import CallReverted, Chain
from ..constants import MIN_DELAY, ZERO_BYTES32
from ..contracts.base import transaction
from ..crypto.hashing import abi_hash, to_bytes32
from ..events import Event
from ..exceptions import (
    AuthorizationError,
    DependencyError,
    ReplayError,
    SnapvoteError,
    StateError,
    ValidationError,
)
from ..logger import get_logger
from .access import AccessControl, Role

logger = get_logger(__name__)

Bytes32Like = Union[bytes, str, int]

# Sentinel ready-time for executed operations
DONE_TIMESTAMP = 1


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TimelockError(SnapvoteError):
    """Timelock-specific errors."""


class InvalidOperationLength(TimelockError, ValidationError):
    """targets / values / payloads lengths differ."""


class InsufficientDelay(TimelockError, ValidationError):
    """Requested delay is below the minimum."""


class OperationAlreadyScheduled(TimelockError, ReplayError):
    """An operation with the same id is already scheduled or done."""


class OperationNotReady(TimelockError, StateError):
    """Execution attempted outside the READY state."""


class OperationNotPending(TimelockError, StateError):
    """Cancel attempted on an operation that is not waiting or ready."""


class PredecessorNotExecuted(TimelockError, DependencyError):
    """The declared predecessor has not been executed."""


class UnderlyingCallReverted(TimelockError, DependencyError):
    """One of the operation's calls failed."""


class UnauthorizedCaller(TimelockError, AuthorizationError):
    """Only the timelock itself may perform this change."""


# ══════════════════════════════════════════════════════════════════════
#  OPERATION IDS
# ══════════════════════════════════════════════════════════════════════

class OperationState(IntEnum):
    UNSET = 0
    WAITING = 1
    READY = 2
    DONE = 3
    CANCELLED = 4


def hash_operation(
    target: str, value: int, data: bytes, predecessor: Bytes32Like, salt: Bytes32Like
) -> bytes:
    return abi_hash(
        ["address", "uint256", "bytes", "bytes32", "bytes32"],
        [to_checksum_address(target), value, bytes(data), to_bytes32(predecessor), to_bytes32(salt)],
    )


def hash_operation_batch(
    targets: Sequence[str],
    values: Sequence[int],
    payloads: Sequence[bytes],
    predecessor: Bytes32Like,
    salt: Bytes32Like,
) -> bytes:
    return abi_hash(
        ["address[]", "uint256[]", "bytes[]", "bytes32", "bytes32"],
        [
            [to_checksum_address(t) for t in targets],
            list(values),
            [bytes(p) for p in payloads],
            to_bytes32(predecessor),
            to_bytes32(salt),
        ],
    )


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CallScheduled(Event):
    name = "CallScheduled"
    id: bytes
    index: int
    target: str
    value: int
    data: bytes
    predecessor: bytes
    delay: int


@dataclass(frozen=True)
class CallExecuted(Event):
    name = "CallExecuted"
    id: bytes
    index: int
    target: str
    value: int
    data: bytes


@dataclass(frozen=True)
class CallSalt(Event):
    name = "CallSalt"
    id: bytes
    salt: bytes


@dataclass(frozen=True)
class Cancelled(Event):
    name = "Cancelled"
    id: bytes


@dataclass(frozen=True)
class MinDelayChange(Event):
    name = "MinDelayChange"
    old_duration: int
    new_duration: int


# ══════════════════════════════════════════════════════════════════════
#  TIMELOCK CONTROLLER
# ══════════════════════════════════════════════════════════════════════

class TimelockController(AccessControl):
    """
    Queue of operations awaiting execution after a delay.

    Roles:
        ADMIN      manages every other role (the timelock holds it on itself)
        PROPOSER   schedules operations
        EXECUTOR   executes ready operations; open to anyone when held by
                   the zero address
        CANCELLER  cancels pending operations
    """

    FUNCTIONS = {
        **AccessControl.FUNCTIONS,
        "schedule(address,uint256,bytes,bytes32,bytes32,uint256)": "schedule",
        "scheduleBatch(address[],uint256[],bytes[],bytes32,bytes32,uint256)": "schedule_batch",
        "execute(address,uint256,bytes,bytes32,bytes32)": "execute",
        "executeBatch(address[],uint256[],bytes[],bytes32,bytes32)": "execute_batch",
        "cancel(bytes32)": "cancel",
        "updateDelay(uint256)": "update_delay",
        "getMinDelay()": "get_min_delay",
        "getTimestamp(bytes32)": "get_timestamp",
        "getOperationState(bytes32)": "get_operation_state",
        "isOperation(bytes32)": "is_operation",
        "isOperationPending(bytes32)": "is_operation_pending",
        "isOperationReady(bytes32)": "is_operation_ready",
        "isOperationDone(bytes32)": "is_operation_done",
    }

    def __init__(
        self,
        chain: Chain,
        deployer: str,
        min_delay: int = MIN_DELAY,
        proposers: Sequence[str] = (),
        executors: Sequence[str] = (),
        admin: Optional[str] = None,
    ):
        if min_delay < 0:
            raise InsufficientDelay("Minimum delay cannot be negative")
        super().__init__(chain, deployer)

        self._min_delay = min_delay
        self._timestamps: Dict[bytes, int] = {}
        self._cancelled: Set[bytes] = set()

        self._grant_role(Role.ADMIN, self.address, self.deployer)
        if admin is not None:
            self._grant_role(Role.ADMIN, admin, self.deployer)
        for proposer in proposers:
            self._grant_role(Role.PROPOSER, proposer, self.deployer)
            self._grant_role(Role.CANCELLER, proposer, self.deployer)
        for executor in executors:
            self._grant_role(Role.EXECUTOR, executor, self.deployer)

        self._emit(MinDelayChange(old_duration=0, new_duration=min_delay))
        logger.info(f"TimelockController deployed at {self.address} min_delay={min_delay}s")

    def receive(self, *, sender: str, value: int) -> bytes:
        """The timelock holds native value for operations that forward it."""
        return b""

    # ── Queries ───────────────────────────────────────────────────────

    def get_min_delay(self) -> int:
        return self._min_delay

    def get_timestamp(self, operation_id: Bytes32Like) -> int:
        """Ready time of the operation; 0 if unset or cancelled, 1 once done."""
        return self._timestamps.get(to_bytes32(operation_id), 0)

    def get_operation_state(self, operation_id: Bytes32Like) -> OperationState:
        operation_id = to_bytes32(operation_id)
        ready_at = self._timestamps.get(operation_id)
        if ready_at is None:
            if operation_id in self._cancelled:
                return OperationState.CANCELLED
            return OperationState.UNSET
        if ready_at == DONE_TIMESTAMP:
            return OperationState.DONE
        if ready_at > self.chain.timestamp:
            return OperationState.WAITING
        return OperationState.READY

    def is_operation(self, operation_id: Bytes32Like) -> bool:
        return self.get_operation_state(operation_id) not in (
            OperationState.UNSET, OperationState.CANCELLED,
        )

    def is_operation_pending(self, operation_id: Bytes32Like) -> bool:
        return self.get_operation_state(operation_id) in (
            OperationState.WAITING, OperationState.READY,
        )

    def is_operation_ready(self, operation_id: Bytes32Like) -> bool:
        return self.get_operation_state(operation_id) == OperationState.READY

    def is_operation_done(self, operation_id: Bytes32Like) -> bool:
        return self.get_operation_state(operation_id) == OperationState.DONE

    hash_operation = staticmethod(hash_operation)
    hash_operation_batch = staticmethod(hash_operation_batch)

    # ── Scheduling ────────────────────────────────────────────────────

    def _schedule(self, operation_id: bytes, delay: int) -> None:
        if self.is_operation(operation_id):
            raise OperationAlreadyScheduled(
                f"Operation 0x{operation_id.hex()} already "
                f"{self.get_operation_state(operation_id).name}"
            )
        if delay < self._min_delay:
            raise InsufficientDelay(f"Delay {delay}s < minimum {self._min_delay}s")
        self._cancelled.discard(operation_id)
        self._timestamps[operation_id] = self.chain.timestamp + delay

    @transaction
    def schedule(
        self,
        target: str,
        value: int,
        data: bytes,
        predecessor: Bytes32Like,
        salt: Bytes32Like,
        delay: int,
        *,
        sender: str,
    ) -> bytes:
        self._check_role(Role.PROPOSER, sender)
        operation_id = hash_operation(target, value, data, predecessor, salt)
        self._schedule(operation_id, delay)
        self._emit(CallScheduled(
            id=operation_id, index=0, target=to_checksum_address(target), value=value,
            data=bytes(data), predecessor=to_bytes32(predecessor), delay=delay,
        ))
        if to_bytes32(salt) != ZERO_BYTES32:
            self._emit(CallSalt(id=operation_id, salt=to_bytes32(salt)))
        logger.info(f"Scheduled operation 0x{operation_id.hex()[:16]}… delay={delay}s")
        return operation_id

    @transaction
    def schedule_batch(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        payloads: Sequence[bytes],
        predecessor: Bytes32Like,
        salt: Bytes32Like,
        delay: int,
        *,
        sender: str,
    ) -> bytes:
        self._check_role(Role.PROPOSER, sender)
        if not (len(targets) == len(values) == len(payloads)):
            raise InvalidOperationLength(
                f"targets={len(targets)} values={len(values)} payloads={len(payloads)}"
            )
        operation_id = hash_operation_batch(targets, values, payloads, predecessor, salt)
        self._schedule(operation_id, delay)
        for i, (target, value, payload) in enumerate(zip(targets, values, payloads)):
            self._emit(CallScheduled(
                id=operation_id, index=i, target=to_checksum_address(target), value=value,
                data=bytes(payload), predecessor=to_bytes32(predecessor), delay=delay,
            ))
        if to_bytes32(salt) != ZERO_BYTES32:
            self._emit(CallSalt(id=operation_id, salt=to_bytes32(salt)))
        logger.info(
            f"Scheduled batch 0x{operation_id.hex()[:16]}… "
            f"({len(targets)} calls) delay={delay}s"
        )
        return operation_id

    # ── Cancellation ──────────────────────────────────────────────────

    @transaction
    def cancel(self, operation_id: Bytes32Like, *, sender: str) -> None:
        self._check_role(Role.CANCELLER, sender)
        operation_id = to_bytes32(operation_id)
        if not self.is_operation_pending(operation_id):
            raise OperationNotPending(
                f"Operation 0x{operation_id.hex()} is "
                f"{self.get_operation_state(operation_id).name}"
            )
        del self._timestamps[operation_id]
        self._cancelled.add(operation_id)
        self._emit(Cancelled(id=operation_id))
        logger.warning(f"Cancelled operation 0x{operation_id.hex()[:16]}… by {sender}")

    # ── Execution ─────────────────────────────────────────────────────

    def _before_call(self, operation_id: bytes, predecessor: Bytes32Like) -> None:
        state = self.get_operation_state(operation_id)
        if state != OperationState.READY:
            raise OperationNotReady(
                f"Operation 0x{operation_id.hex()} is {state.name}, expected READY"
            )
        predecessor = to_bytes32(predecessor)
        if predecessor != ZERO_BYTES32 and not self.is_operation_done(predecessor):
            raise PredecessorNotExecuted(
                f"Predecessor 0x{predecessor.hex()} has not been executed"
            )

    def _after_call(self, operation_id: bytes) -> None:
        if not self.is_operation_ready(operation_id):
            raise OperationNotReady(
                f"Operation 0x{operation_id.hex()} changed state during execution"
            )
        self._timestamps[operation_id] = DONE_TIMESTAMP

    def _execute(self, target: str, value: int, data: bytes) -> Any:
        try:
            return self.chain.call(self.address, target, value, bytes(data))
        except CallReverted as exc:
            raise UnderlyingCallReverted(f"Call to {target} failed: {exc}") from exc

    @transaction
    def execute(
        self,
        target: str,
        value: int,
        payload: bytes,
        predecessor: Bytes32Like,
        salt: Bytes32Like,
        *,
        sender: str,
    ) -> Any:
        self._check_role_or_open(Role.EXECUTOR, sender)
        operation_id = hash_operation(target, value, payload, predecessor, salt)
        self._before_call(operation_id, predecessor)
        result = self._execute(target, value, payload)
        self._emit(CallExecuted(
            id=operation_id, index=0, target=to_checksum_address(target),
            value=value, data=bytes(payload),
        ))
        self._after_call(operation_id)
        logger.info(f"Executed operation 0x{operation_id.hex()[:16]}…")
        return result

    @transaction
    def execute_batch(
        self,
        targets: Sequence[str],
        values: Sequence[int],
        payloads: Sequence[bytes],
        predecessor: Bytes32Like,
        salt: Bytes32Like,
        *,
        sender: str,
    ) -> List[Any]:
        """
        Run every call of a ready batch as the timelock.

        If any call fails the whole batch is rolled back and the operation
        stays READY.
        """
        self._check_role_or_open(Role.EXECUTOR, sender)
        if not (len(targets) == len(values) == len(payloads)):
            raise InvalidOperationLength(
                f"targets={len(targets)} values={len(values)} payloads={len(payloads)}"
            )
        operation_id = hash_operation_batch(targets, values, payloads, predecessor, salt)
        self._before_call(operation_id, predecessor)
        results = []
        for i, (target, value, payload) in enumerate(zip(targets, values, payloads)):
            results.append(self._execute(target, value, payload))
            self._emit(CallExecuted(
                id=operation_id, index=i, target=to_checksum_address(target),
                value=value, data=bytes(payload),
            ))
        self._after_call(operation_id)
        logger.info(f"Executed batch 0x{operation_id.hex()[:16]}… ({len(targets)} calls)")
        return results

    # ── Self-administration ───────────────────────────────────────────

    @transaction
    def update_delay(self, new_delay: int, *, sender: str) -> None:
        """Change the minimum delay. Must arrive through a scheduled operation."""
        if sender != self.address:
            raise UnauthorizedCaller(f"{sender} is not the timelock")
        if new_delay < 0:
            raise InsufficientDelay("Minimum delay cannot be negative")
        old, self._min_delay = self._min_delay, new_delay
        self._emit(MinDelayChange(old_duration=old, new_duration=new_delay))
        logger.info(f"Timelock min delay {old}s → {new_delay}s")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "minDelay": self._min_delay,
            "operations": len(self._timestamps),
            "cancelled": len(self._cancelled),
            "roles": {role.value: self.get_role_members(role) for role in Role},
        }
