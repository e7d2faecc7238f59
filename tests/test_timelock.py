"""
Timelock Controller Test Suite

Coverage:
  Roles       : grant / revoke / renounce, admin checks, open executor role
  Scheduling  : proposer gate, minimum delay, duplicate rejection, salt event
  Execution   : readiness window, predecessors, batch atomicity, value forwarding
  Cancel      : canceller gate, pending-only, rescheduling after cancel
  Self-admin  : update_delay only through a scheduled operation
"""

import os
import sys

import pytest
from eth_utils import to_checksum_address

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from snapvote.chain import Chain
from snapvote.constants import ZERO_ADDRESS, ZERO_BYTES32
from snapvote.contracts.box import Box
from snapvote.crypto.contract import encode_function_call
from snapvote.crypto.hashing import abi_hash
from snapvote.events import filter_events, parse_event_by_name
from snapvote.exceptions import AuthorizationError, DependencyError, StateError
from snapvote.governance import (
    BadConfirmation,
    InsufficientDelay,
    InvalidOperationLength,
    MissingRole,
    OperationAlreadyScheduled,
    OperationNotPending,
    OperationNotReady,
    OperationState,
    PredecessorNotExecuted,
    Role,
    TimelockController,
    UnauthorizedCaller,
    UnderlyingCallReverted,
    UnknownRole,
    hash_operation,
    hash_operation_batch,
)


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

GENESIS_TS = 1_700_000_000
DELAY = 100

ADMIN = to_checksum_address("0x" + "ad" * 20)
PROPOSER = to_checksum_address("0x" + "a1" * 20)
EXECUTOR = to_checksum_address("0x" + "e1" * 20)
OUTSIDER = to_checksum_address("0x" + "0f" * 20)
PAYEE = to_checksum_address("0x" + "9a" * 20)

SALT = b"\x01" * 32


def make_timelock(executors=None):
    """Timelock with one proposer, one executor and a box it owns."""
    chain = Chain(timestamp=GENESIS_TS)
    timelock = TimelockController(
        chain, ADMIN,
        min_delay=DELAY,
        proposers=[PROPOSER],
        executors=[EXECUTOR] if executors is None else executors,
        admin=ADMIN,
    )
    box = Box(chain, ADMIN, initial_owner=timelock.address)
    return chain, timelock, box


def store_call(value):
    return encode_function_call("store(uint256)", value)


def schedule_store(timelock, box, value, predecessor=ZERO_BYTES32, salt=ZERO_BYTES32):
    receipt = timelock.schedule(
        box.address, 0, store_call(value), predecessor, salt, DELAY, sender=PROPOSER,
    )
    return receipt.return_value


# ══════════════════════════════════════════════════════════════════════
#  ROLES
# ══════════════════════════════════════════════════════════════════════


class TestTimelockRoles:
    """Initial wiring and AccessControl transactions."""

    def test_initial_roles(self):
        _, timelock, _ = make_timelock()
        assert timelock.has_role(Role.ADMIN, timelock.address)
        assert timelock.has_role(Role.ADMIN, ADMIN)
        assert timelock.has_role(Role.PROPOSER, PROPOSER)
        assert timelock.has_role(Role.CANCELLER, PROPOSER)
        assert timelock.has_role(Role.EXECUTOR, EXECUTOR)
        assert not timelock.has_role(Role.PROPOSER, OUTSIDER)

    def test_role_ids(self):
        assert Role.ADMIN.role_id == ZERO_BYTES32
        assert Role.parse(Role.PROPOSER.role_id) is Role.PROPOSER
        assert Role.parse("EXECUTOR_ROLE") is Role.EXECUTOR
        assert Role.parse("CANCELLER") is Role.CANCELLER

    def test_unknown_role(self):
        with pytest.raises(UnknownRole):
            Role.parse("MINTER_ROLE")

    def test_admin_grants_and_revokes(self):
        _, timelock, _ = make_timelock()
        receipt = timelock.grant_role(Role.PROPOSER, OUTSIDER, sender=ADMIN)
        assert receipt.return_value is True
        assert parse_event_by_name(receipt.logs, "RoleGranted").args["role"] == "PROPOSER_ROLE"
        assert timelock.has_role(Role.PROPOSER, OUTSIDER)
        timelock.revoke_role(Role.PROPOSER, OUTSIDER, sender=ADMIN)
        assert not timelock.has_role(Role.PROPOSER, OUTSIDER)

    def test_regrant_is_noop(self):
        _, timelock, _ = make_timelock()
        receipt = timelock.grant_role(Role.PROPOSER, PROPOSER, sender=ADMIN)
        assert receipt.return_value is False
        assert receipt.logs == ()

    def test_non_admin_cannot_grant(self):
        _, timelock, _ = make_timelock()
        with pytest.raises(MissingRole, match="DEFAULT_ADMIN_ROLE"):
            timelock.grant_role(Role.PROPOSER, OUTSIDER, sender=PROPOSER)

    def test_renounce_own_role(self):
        _, timelock, _ = make_timelock()
        timelock.renounce_role(Role.PROPOSER, PROPOSER, sender=PROPOSER)
        assert not timelock.has_role(Role.PROPOSER, PROPOSER)

    def test_renounce_for_other_rejected(self):
        _, timelock, _ = make_timelock()
        with pytest.raises(BadConfirmation):
            timelock.renounce_role(Role.PROPOSER, PROPOSER, sender=ADMIN)

    def test_role_members_and_to_dict(self):
        _, timelock, _ = make_timelock()
        assert timelock.get_role_members(Role.PROPOSER) == [PROPOSER]
        d = timelock.to_dict()
        assert d["minDelay"] == DELAY
        assert d["roles"]["EXECUTOR_ROLE"] == [EXECUTOR]


# ══════════════════════════════════════════════════════════════════════
#  SCHEDULING
# ══════════════════════════════════════════════════════════════════════


class TestSchedule:
    """schedule / schedule_batch."""

    def test_schedule_sets_ready_time(self):
        chain, timelock, box = make_timelock()
        op_id = schedule_store(timelock, box, 5)
        assert timelock.get_timestamp(op_id) == chain.timestamp + DELAY
        assert timelock.get_operation_state(op_id) == OperationState.WAITING
        assert timelock.is_operation_pending(op_id)
        assert not timelock.is_operation_ready(op_id)

    def test_operation_id_is_abi_hash(self):
        _, timelock, box = make_timelock()
        op_id = schedule_store(timelock, box, 5, salt=SALT)
        expected = abi_hash(
            ["address", "uint256", "bytes", "bytes32", "bytes32"],
            [box.address, 0, store_call(5), ZERO_BYTES32, SALT],
        )
        assert op_id == expected
        assert hash_operation(box.address, 0, store_call(5), ZERO_BYTES32, SALT) == expected

    def test_batch_id_differs_from_single(self):
        _, _, box = make_timelock()
        single = hash_operation(box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32)
        batch = hash_operation_batch([box.address], [0], [store_call(5)], ZERO_BYTES32, ZERO_BYTES32)
        assert single != batch

    def test_schedule_requires_proposer(self):
        _, timelock, box = make_timelock()
        with pytest.raises(MissingRole, match="PROPOSER_ROLE"):
            timelock.schedule(
                box.address, 0, store_call(1), ZERO_BYTES32, ZERO_BYTES32, DELAY,
                sender=OUTSIDER,
            )

    def test_schedule_below_min_delay(self):
        _, timelock, box = make_timelock()
        with pytest.raises(InsufficientDelay):
            timelock.schedule(
                box.address, 0, store_call(1), ZERO_BYTES32, ZERO_BYTES32, DELAY - 1,
                sender=PROPOSER,
            )

    def test_duplicate_schedule_rejected(self):
        _, timelock, box = make_timelock()
        schedule_store(timelock, box, 5)
        with pytest.raises(OperationAlreadyScheduled):
            schedule_store(timelock, box, 5)

    def test_same_call_different_salt_allowed(self):
        _, timelock, box = make_timelock()
        first = schedule_store(timelock, box, 5)
        second = schedule_store(timelock, box, 5, salt=SALT)
        assert first != second

    def test_salt_event_only_when_nonzero(self):
        _, timelock, box = make_timelock()
        receipt = timelock.schedule(
            box.address, 0, store_call(1), ZERO_BYTES32, ZERO_BYTES32, DELAY, sender=PROPOSER,
        )
        assert filter_events(receipt.logs, "CallSalt") == []
        receipt = timelock.schedule(
            box.address, 0, store_call(1), ZERO_BYTES32, SALT, DELAY, sender=PROPOSER,
        )
        assert parse_event_by_name(receipt.logs, "CallSalt").args["salt"] == SALT

    def test_batch_length_mismatch(self):
        _, timelock, box = make_timelock()
        with pytest.raises(InvalidOperationLength):
            timelock.schedule_batch(
                [box.address, box.address], [0], [store_call(1)],
                ZERO_BYTES32, ZERO_BYTES32, DELAY, sender=PROPOSER,
            )

    def test_batch_emits_one_event_per_call(self):
        _, timelock, box = make_timelock()
        receipt = timelock.schedule_batch(
            [box.address, box.address], [0, 0], [store_call(1), store_call(2)],
            ZERO_BYTES32, ZERO_BYTES32, DELAY, sender=PROPOSER,
        )
        events = filter_events(receipt.logs, "CallScheduled")
        assert [e.args["index"] for e in events] == [0, 1]


# ══════════════════════════════════════════════════════════════════════
#  EXECUTION
# ══════════════════════════════════════════════════════════════════════


class TestExecute:
    """execute / execute_batch."""

    def test_execute_too_early(self):
        _, timelock, box = make_timelock()
        schedule_store(timelock, box, 5)
        with pytest.raises(OperationNotReady, match="WAITING"):
            timelock.execute(
                box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR,
            )

    def test_not_ready_is_state_error(self):
        _, timelock, box = make_timelock()
        with pytest.raises(StateError):
            timelock.execute(
                box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR,
            )

    def test_execute_when_ready(self):
        chain, timelock, box = make_timelock()
        op_id = schedule_store(timelock, box, 5)
        chain.increase_time(DELAY)
        assert timelock.get_operation_state(op_id) == OperationState.READY
        receipt = timelock.execute(
            box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR,
        )
        assert box.retrieve() == 5
        assert timelock.is_operation_done(op_id)
        assert timelock.get_timestamp(op_id) == 1
        assert parse_event_by_name(receipt.logs, "ValueChanged").args["new_value"] == 5
        assert parse_event_by_name(receipt.logs, "CallExecuted").args["id"] == op_id

    def test_execute_exactly_at_ready_timestamp(self):
        chain, timelock, box = make_timelock()
        op_id = schedule_store(timelock, box, 5)
        ready_at = timelock.get_timestamp(op_id)
        assert ready_at == chain.timestamp + DELAY

        # increase_time mines one block, which adds the last second
        chain.increase_time(DELAY - 2)
        assert chain.timestamp == ready_at - 1
        assert timelock.get_operation_state(op_id) == OperationState.WAITING
        with pytest.raises(OperationNotReady, match="WAITING"):
            timelock.execute(
                box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR,
            )

        chain.mine(1)
        assert chain.timestamp == ready_at
        assert timelock.is_operation_ready(op_id)
        timelock.execute(box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR)
        assert box.retrieve() == 5

    def test_execute_twice_rejected(self):
        chain, timelock, box = make_timelock()
        schedule_store(timelock, box, 5)
        chain.increase_time(DELAY)
        timelock.execute(box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR)
        with pytest.raises(OperationNotReady, match="DONE"):
            timelock.execute(
                box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR,
            )

    def test_execute_requires_executor(self):
        chain, timelock, box = make_timelock()
        schedule_store(timelock, box, 5)
        chain.increase_time(DELAY)
        with pytest.raises(MissingRole, match="EXECUTOR_ROLE"):
            timelock.execute(
                box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=OUTSIDER,
            )

    def test_open_executor_role(self):
        chain, timelock, box = make_timelock(executors=[ZERO_ADDRESS])
        schedule_store(timelock, box, 5)
        chain.increase_time(DELAY)
        timelock.execute(box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=OUTSIDER)
        assert box.retrieve() == 5

    def test_predecessor_must_run_first(self):
        chain, timelock, box = make_timelock()
        first = schedule_store(timelock, box, 1)
        schedule_store(timelock, box, 2, predecessor=first)
        chain.increase_time(DELAY)
        with pytest.raises(PredecessorNotExecuted):
            timelock.execute(box.address, 0, store_call(2), first, ZERO_BYTES32, sender=EXECUTOR)
        timelock.execute(box.address, 0, store_call(1), ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR)
        timelock.execute(box.address, 0, store_call(2), first, ZERO_BYTES32, sender=EXECUTOR)
        assert box.retrieve() == 2

    def test_failed_call_leaves_operation_ready(self):
        chain, timelock, box = make_timelock()
        foreign_box = Box(chain, ADMIN)
        op_id = schedule_store(timelock, foreign_box, 9)
        chain.increase_time(DELAY)
        with pytest.raises(UnderlyingCallReverted):
            timelock.execute(
                foreign_box.address, 0, store_call(9), ZERO_BYTES32, ZERO_BYTES32,
                sender=EXECUTOR,
            )
        assert foreign_box.retrieve() == 0
        assert timelock.get_operation_state(op_id) == OperationState.READY

    def test_batch_is_all_or_nothing(self):
        chain, timelock, box = make_timelock()
        foreign_box = Box(chain, ADMIN)
        targets = [box.address, foreign_box.address]
        payloads = [store_call(5), store_call(6)]
        receipt = timelock.schedule_batch(
            targets, [0, 0], payloads, ZERO_BYTES32, ZERO_BYTES32, DELAY, sender=PROPOSER,
        )
        op_id = receipt.return_value
        chain.increase_time(DELAY)
        logs_before = chain.log_count
        with pytest.raises(DependencyError):
            timelock.execute_batch(
                targets, [0, 0], payloads, ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR,
            )
        assert box.retrieve() == 0
        assert chain.log_count == logs_before
        assert timelock.is_operation_ready(op_id)

    def test_batch_success(self):
        chain, timelock, box = make_timelock()
        other = Box(chain, ADMIN, initial_owner=timelock.address)
        targets = [box.address, other.address]
        payloads = [store_call(5), store_call(6)]
        timelock.schedule_batch(
            targets, [0, 0], payloads, ZERO_BYTES32, ZERO_BYTES32, DELAY, sender=PROPOSER,
        )
        chain.increase_time(DELAY)
        timelock.execute_batch(targets, [0, 0], payloads, ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR)
        assert (box.retrieve(), other.retrieve()) == (5, 6)

    def test_value_forwarding(self):
        chain, timelock, _ = make_timelock()
        chain.fund(timelock.address, 1_000)
        timelock.schedule(PAYEE, 400, b"", ZERO_BYTES32, ZERO_BYTES32, DELAY, sender=PROPOSER)
        chain.increase_time(DELAY)
        timelock.execute(PAYEE, 400, b"", ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR)
        assert chain.balance(PAYEE) == 400
        assert chain.balance(timelock.address) == 600

    def test_value_forwarding_without_funds(self):
        chain, timelock, _ = make_timelock()
        timelock.schedule(PAYEE, 400, b"", ZERO_BYTES32, ZERO_BYTES32, DELAY, sender=PROPOSER)
        chain.increase_time(DELAY)
        with pytest.raises(UnderlyingCallReverted):
            timelock.execute(PAYEE, 400, b"", ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR)
        assert chain.balance(PAYEE) == 0


# ══════════════════════════════════════════════════════════════════════
#  CANCEL
# ══════════════════════════════════════════════════════════════════════


class TestCancel:
    """cancel and rescheduling."""

    def test_cancel_pending(self):
        _, timelock, box = make_timelock()
        op_id = schedule_store(timelock, box, 5)
        receipt = timelock.cancel(op_id, sender=PROPOSER)
        assert parse_event_by_name(receipt.logs, "Cancelled").args["id"] == op_id
        assert timelock.get_operation_state(op_id) == OperationState.CANCELLED
        assert timelock.get_timestamp(op_id) == 0
        assert not timelock.is_operation(op_id)

    def test_cancel_requires_canceller(self):
        _, timelock, box = make_timelock()
        op_id = schedule_store(timelock, box, 5)
        with pytest.raises(AuthorizationError):
            timelock.cancel(op_id, sender=EXECUTOR)

    def test_cancel_unknown_operation(self):
        _, timelock, _ = make_timelock()
        with pytest.raises(OperationNotPending, match="UNSET"):
            timelock.cancel(b"\x07" * 32, sender=PROPOSER)

    def test_cancel_done_operation(self):
        chain, timelock, box = make_timelock()
        op_id = schedule_store(timelock, box, 5)
        chain.increase_time(DELAY)
        timelock.execute(box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR)
        with pytest.raises(OperationNotPending, match="DONE"):
            timelock.cancel(op_id, sender=PROPOSER)

    def test_cancelled_cannot_execute(self):
        chain, timelock, box = make_timelock()
        op_id = schedule_store(timelock, box, 5)
        timelock.cancel(op_id, sender=PROPOSER)
        chain.increase_time(DELAY)
        with pytest.raises(OperationNotReady, match="CANCELLED"):
            timelock.execute(
                box.address, 0, store_call(5), ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR,
            )

    def test_reschedule_after_cancel(self):
        _, timelock, box = make_timelock()
        op_id = schedule_store(timelock, box, 5)
        timelock.cancel(op_id, sender=PROPOSER)
        assert schedule_store(timelock, box, 5) == op_id
        assert timelock.get_operation_state(op_id) == OperationState.WAITING


# ══════════════════════════════════════════════════════════════════════
#  SELF-ADMINISTRATION
# ══════════════════════════════════════════════════════════════════════


class TestUpdateDelay:
    """update_delay."""

    def test_direct_call_rejected(self):
        _, timelock, _ = make_timelock()
        with pytest.raises(UnauthorizedCaller):
            timelock.update_delay(10, sender=ADMIN)

    def test_update_through_scheduled_operation(self):
        chain, timelock, _ = make_timelock()
        payload = encode_function_call("updateDelay(uint256)", 500)
        timelock.schedule(
            timelock.address, 0, payload, ZERO_BYTES32, ZERO_BYTES32, DELAY, sender=PROPOSER,
        )
        chain.increase_time(DELAY)
        receipt = timelock.execute(
            timelock.address, 0, payload, ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR,
        )
        assert timelock.get_min_delay() == 500
        change = parse_event_by_name(receipt.logs, "MinDelayChange")
        assert change.args == {"old_duration": DELAY, "new_duration": 500}

    def test_grant_role_through_scheduled_operation(self):
        chain, timelock, _ = make_timelock()
        payload = encode_function_call(
            "grantRole(bytes32,address)", Role.PROPOSER.role_id, OUTSIDER,
        )
        timelock.schedule(
            timelock.address, 0, payload, ZERO_BYTES32, ZERO_BYTES32, DELAY, sender=PROPOSER,
        )
        chain.increase_time(DELAY)
        timelock.execute(timelock.address, 0, payload, ZERO_BYTES32, ZERO_BYTES32, sender=EXECUTOR)
        assert timelock.has_role(Role.PROPOSER, OUTSIDER)
