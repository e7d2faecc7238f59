"""
Local Chain Simulator

A deterministic, single-process stand-in for an EVM network:

  - block-number and timestamp clocks, advanced only by ``mine`` /
    ``increase_time``
  - CREATE-style contract addressing and a contract registry
  - native balances for value-carrying calls
  - an append-only event log
  - atomic frames: every transaction snapshots all contract storage and
    restores it if the transaction raises
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

from eth_utils import is_address, to_checksum_address

from .constants import LOCAL_CHAIN_ID, SECONDS_PER_BLOCK
from .crypto.contract import generate_contract_address
from .events import Event, Log
from .exceptions import DependencyError, SnapvoteError, ValidationError
from .logger import get_logger

if TYPE_CHECKING:
    from .contracts.base import Contract

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class ChainError(SnapvoteError):
    """Base chain-simulator error."""


class CallReverted(ChainError, DependencyError):
    """A routed call failed inside the target."""


class InsufficientNativeBalance(ChainError, ValidationError):
    """Sender cannot cover the value attached to a call."""


# ══════════════════════════════════════════════════════════════════════
#  RECEIPT
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Receipt:
    """Outcome of a committed transaction."""
    block_number: int
    timestamp: int
    logs: Tuple[Log, ...]
    return_value: Any = None
    status: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "logs": [log.to_dict() for log in self.logs],
        }


# ══════════════════════════════════════════════════════════════════════
#  CHAIN
# ══════════════════════════════════════════════════════════════════════

class Chain:
    """
    In-process chain used by every contract in the package.

    Args:
        chain_id: EIP-155 chain id, used in EIP-712 domains
        timestamp: Genesis timestamp (defaults to wall clock)
        seconds_per_block: Timestamp increment per mined block
    """

    def __init__(
        self,
        chain_id: int = LOCAL_CHAIN_ID,
        timestamp: Optional[int] = None,
        seconds_per_block: int = SECONDS_PER_BLOCK,
    ):
        self.chain_id = chain_id
        self.block_number = 0
        self.timestamp = int(time.time()) if timestamp is None else int(timestamp)
        self.seconds_per_block = seconds_per_block

        self._contracts: Dict[str, "Contract"] = {}
        self._native: Dict[str, int] = {}
        self._deploy_nonces: Dict[str, int] = {}
        self._logs: List[Log] = []

    # ── Clock ─────────────────────────────────────────────────────────

    def clock(self) -> int:
        """Current voting timepoint (block number)."""
        return self.block_number

    def mine(self, blocks: int = 1) -> int:
        """Mine *blocks* empty blocks. Returns the new block number."""
        if blocks < 0:
            raise ValueError("Cannot mine a negative number of blocks")
        self.block_number += blocks
        self.timestamp += blocks * self.seconds_per_block
        return self.block_number

    def increase_time(self, seconds: int) -> int:
        """Advance the timestamp by *seconds*, then mine one block."""
        if seconds < 0:
            raise ValueError("Time cannot move backwards")
        self.timestamp += seconds
        return self.mine(1)

    # ── Contracts ─────────────────────────────────────────────────────

    def register(self, contract: "Contract", deployer: str) -> str:
        """Assign a CREATE address to *contract* and record it."""
        nonce = self._deploy_nonces.get(deployer, 0)
        address = generate_contract_address(deployer, nonce)
        self._deploy_nonces[deployer] = nonce + 1
        self._contracts[address] = contract
        logger.debug(f"Deployed {type(contract).__name__} at {address}")
        return address

    def deploy(self, contract_cls: type, deployer: str, *args, **kwargs) -> "Contract":
        """Construct *contract_cls* on this chain as *deployer*."""
        return contract_cls(self, deployer, *args, **kwargs)

    def get_contract(self, address: str) -> Optional["Contract"]:
        return self._contracts.get(to_checksum_address(address))

    def is_contract(self, address: str) -> bool:
        return to_checksum_address(address) in self._contracts

    # ── Native balances ───────────────────────────────────────────────

    def balance(self, address: str) -> int:
        return self._native.get(to_checksum_address(address), 0)

    def fund(self, address: str, amount: int) -> None:
        """Credit native currency to *address* (test faucet)."""
        if amount < 0:
            raise ValueError("Funding amount cannot be negative")
        address = to_checksum_address(address)
        self._native[address] = self._native.get(address, 0) + amount

    def _move_native(self, sender: str, recipient: str, amount: int) -> None:
        available = self._native.get(sender, 0)
        if available < amount:
            raise InsufficientNativeBalance(
                f"{sender} native balance {available} < call value {amount}"
            )
        self._native[sender] = available - amount
        self._native[recipient] = self._native.get(recipient, 0) + amount

    # ── Calls ─────────────────────────────────────────────────────────

    def call(self, sender: str, target: str, value: int, data: bytes) -> Any:
        """
        Route a low-level call from *sender* to *target*.

        Calls to addresses without code only move value. Any failure in
        the target is re-raised as CallReverted after the frame rolls back.
        """
        if not is_address(target):
            raise CallReverted(f"Invalid call target {target!r}")
        sender = to_checksum_address(sender)
        target = to_checksum_address(target)
        try:
            with self.atomic():
                if value:
                    self._move_native(sender, target, value)
                contract = self._contracts.get(target)
                if contract is None:
                    return b""
                return contract.dispatch(sender=sender, value=value, data=bytes(data))
        except CallReverted:
            raise
        except SnapvoteError as exc:
            raise CallReverted(f"Call to {target} reverted: {exc}") from exc

    # ── Events ────────────────────────────────────────────────────────

    def emit(self, address: str, event: Event) -> Log:
        log = Log(address=address, block_number=self.block_number, event=event)
        self._logs.append(log)
        return log

    @property
    def logs(self) -> List[Log]:
        return list(self._logs)

    @property
    def log_count(self) -> int:
        return len(self._logs)

    def logs_since(self, index: int) -> Tuple[Log, ...]:
        return tuple(self._logs[index:])

    # ── Atomic frames ─────────────────────────────────────────────────

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "contracts": {
                addr: contract.snapshot_state()
                for addr, contract in self._contracts.items()
            },
            "native": dict(self._native),
            "nonces": dict(self._deploy_nonces),
            "logs": len(self._logs),
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        states = snapshot["contracts"]
        # Contracts created inside the failed frame disappear with it
        for addr in list(self._contracts):
            if addr not in states:
                del self._contracts[addr]
        for addr, state in states.items():
            self._contracts[addr].restore_state(state)
        self._native = snapshot["native"]
        self._deploy_nonces = snapshot["nonces"]
        del self._logs[snapshot["logs"]:]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        All-or-nothing frame. Storage, native balances and logs written
        inside are discarded if the body raises.
        """
        snapshot = self._snapshot()
        try:
            yield
        except Exception:
            self._restore(snapshot)
            raise

    def __repr__(self) -> str:
        return (
            f"<Chain id={self.chain_id} block={self.block_number} "
            f"ts={self.timestamp} contracts={len(self._contracts)}>"
        )
