"""
Contract Base

Shared machinery for every simulated contract:

  - ``Contract``: address assignment, event emission, storage snapshots
    for atomic frames, and selector-based calldata dispatch
  - ``transaction``: decorator that runs a mutating method inside an
    atomic frame and returns a ``Receipt``
  - ``Ownable``: single-owner access control
"""

import copy
import functools
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, Tuple

from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from ..chain import CallReverted, Chain, Receipt
from ..crypto.contract import (
    compute_function_selector,
    decode_arguments,
    decode_function_call,
)
from ..constants import ZERO_ADDRESS
from ..events import Event
from ..exceptions import AuthorizationError, SnapvoteError, ValidationError
from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class ContractError(SnapvoteError):
    """Base contract error."""


class OwnableUnauthorizedAccount(ContractError, AuthorizationError):
    """Caller is not the owner."""


class OwnableInvalidOwner(ContractError, ValidationError):
    """Zero address offered as new owner."""


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class OwnershipTransferred(Event):
    name = "OwnershipTransferred"
    previous_owner: str
    new_owner: str


# ══════════════════════════════════════════════════════════════════════
#  TRANSACTION DECORATOR
# ══════════════════════════════════════════════════════════════════════

def transaction(fn: Callable) -> Callable:
    """
    Run a state-mutating contract method as one atomic transaction.

    The keyword-only ``sender`` is normalized to a checksum address. On
    success a Receipt carrying every log emitted during the call is
    returned; on failure all writes are rolled back and the error
    propagates unchanged.
    """
    @functools.wraps(fn)
    def wrapper(self: "Contract", *args, **kwargs) -> Receipt:
        if "sender" in kwargs:
            kwargs["sender"] = to_checksum_address(kwargs["sender"])
        chain = self.chain
        start = chain.log_count
        with chain.atomic():
            result = fn(self, *args, **kwargs)
        return Receipt(
            block_number=chain.block_number,
            timestamp=chain.timestamp,
            logs=chain.logs_since(start),
            return_value=result,
        )
    wrapper.is_transaction = True
    return wrapper


# ══════════════════════════════════════════════════════════════════════
#  CONTRACT
# ══════════════════════════════════════════════════════════════════════

class Contract:
    """
    Base class for simulated contracts.

    Subclasses declare ``FUNCTIONS`` (canonical signature → method name)
    for every entry point reachable through raw calldata, and list in
    ``LINKS`` any attribute holding another contract so storage snapshots
    do not copy across contract boundaries.
    """

    FUNCTIONS: ClassVar[Dict[str, str]] = {}
    LINKS: ClassVar[Tuple[str, ...]] = ()
    _FIXED: ClassVar[Tuple[str, ...]] = ("chain", "address", "deployer")

    def __init__(self, chain: Chain, deployer: str):
        self.chain = chain
        self.deployer = to_checksum_address(deployer)
        self.address = chain.register(self, self.deployer)

    # ── Events ────────────────────────────────────────────────────────

    def _emit(self, event: Event) -> None:
        self.chain.emit(self.address, event)

    # ── Storage snapshots ─────────────────────────────────────────────

    def snapshot_state(self) -> Dict[str, Any]:
        skip = self._FIXED + self.LINKS
        return {
            key: copy.deepcopy(value)
            for key, value in vars(self).items()
            if key not in skip
        }

    def restore_state(self, state: Dict[str, Any]) -> None:
        skip = self._FIXED + self.LINKS
        # Attributes first set inside the failed frame go too
        for key in [k for k in vars(self) if k not in skip and k not in state]:
            del self.__dict__[key]
        self.__dict__.update(state)

    # ── Calldata dispatch ─────────────────────────────────────────────

    @classmethod
    def selectors(cls) -> Dict[bytes, str]:
        return {compute_function_selector(sig): sig for sig in cls.FUNCTIONS}

    def dispatch(self, sender: str, value: int, data: bytes) -> Any:
        """Decode *data* against ``FUNCTIONS`` and invoke the method as *sender*."""
        if not data:
            return self.receive(sender=sender, value=value)
        try:
            selector, encoded = decode_function_call(data)
        except ValueError as exc:
            raise CallReverted(str(exc)) from exc
        signature = self.selectors().get(selector)
        if signature is None:
            raise CallReverted(
                f"{type(self).__name__} has no function for selector 0x{selector.hex()}"
            )
        try:
            args = decode_arguments(signature, encoded)
        except DecodingError as exc:
            raise CallReverted(f"Malformed arguments for {signature}: {exc}") from exc

        method = getattr(self, self.FUNCTIONS[signature])
        if getattr(method, "is_transaction", False):
            return method(*args, sender=sender).return_value
        return method(*args)

    def receive(self, *, sender: str, value: int) -> Any:
        """Plain value transfer. Contracts accept no value unless they override."""
        if value:
            raise CallReverted(f"{type(self).__name__} does not accept value")
        return b""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.address}>"


# ══════════════════════════════════════════════════════════════════════
#  OWNABLE
# ══════════════════════════════════════════════════════════════════════

class Ownable(Contract):
    """Single-owner access control."""

    FUNCTIONS = {
        "owner()": "owner",
        "transferOwnership(address)": "transfer_ownership",
        "renounceOwnership()": "renounce_ownership",
    }

    def __init__(self, chain: Chain, deployer: str, initial_owner: str = None):
        super().__init__(chain, deployer)
        owner = to_checksum_address(initial_owner or deployer)
        self._owner = owner
        self._emit(OwnershipTransferred(previous_owner=ZERO_ADDRESS, new_owner=owner))

    def owner(self) -> str:
        return self._owner

    def _check_owner(self, sender: str) -> None:
        if sender != self._owner:
            raise OwnableUnauthorizedAccount(
                f"{sender} is not the owner of {type(self).__name__}"
            )

    @transaction
    def transfer_ownership(self, new_owner: str, *, sender: str) -> None:
        self._check_owner(sender)
        new_owner = to_checksum_address(new_owner)
        if int(new_owner, 16) == 0:
            raise OwnableInvalidOwner("New owner is the zero address")
        previous, self._owner = self._owner, new_owner
        self._emit(OwnershipTransferred(previous_owner=previous, new_owner=new_owner))
        logger.info(f"{type(self).__name__} ownership: {previous} → {new_owner}")

    @transaction
    def renounce_ownership(self, *, sender: str) -> None:
        self._check_owner(sender)
        previous, self._owner = self._owner, ZERO_ADDRESS
        self._emit(OwnershipTransferred(previous_owner=previous, new_owner=self._owner))
        logger.warning(f"{type(self).__name__} ownership renounced by {previous}")
