"""
Governance Token — Voting Power Ledger

ERC-20 style token with checkpointed vote delegation and EIP-2612 permit:
  - balances, allowances, transfer / approve / transferFrom
  - delegate(): an account's whole balance counts for one delegatee
  - per-delegatee and total-supply checkpoints keyed by block number
  - point-in-time lookups for snapshot voting and quorum
  - signed approvals (permit) with per-owner nonces and replay protection
"""

from dataclasses import dataclass
from typing import Any, Dict, Set, Tuple, Union

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_keys.constants import SECPK1_N
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import is_address, to_checksum_address

from ..chain import Chain
from ..constants import (
    INITIAL_SUPPLY,
    TOKEN_DECIMALS,
    TOKEN_EIP712_VERSION,
    TOKEN_NAME,
    TOKEN_SYMBOL,
    ZERO_ADDRESS,
)
from ..contracts.base import Ownable, transaction
from ..events import Event
from ..exceptions import ReplayError, SnapvoteError, ValidationError
from ..logger import get_logger
from .checkpoints import Checkpoint, Trace

logger = get_logger(__name__)

# ERC20Votes keeps supply representable in 208 bits
MAX_SAFE_SUPPLY = 2 ** 208 - 1

# EIP-2: only the lower-s form of a signature is accepted
SECP256K1_HALF_N = SECPK1_N // 2


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TokenError(SnapvoteError):
    """Base exception for token operations."""


class InsufficientBalance(TokenError, ValidationError):
    """Raised when sender balance is too low."""


class InsufficientAllowance(TokenError, ValidationError):
    """Raised when spender allowance is too low."""


class InvalidReceiver(TokenError, ValidationError):
    """Raised on transfers or mints to the zero address."""


class InvalidDelegatee(TokenError, ValidationError):
    """Raised when the delegatee is not a well-formed address."""


class FutureLookup(TokenError, ValidationError):
    """Raised when a historical lookup asks about a timepoint not yet reached."""


class ExpiredSignature(TokenError, ValidationError):
    """Raised when a permit deadline has passed."""


class InvalidSigner(TokenError, ValidationError):
    """Raised when a permit signature does not recover to the owner."""


class InvalidNonce(TokenError, ReplayError):
    """Raised when a signed authorization was already consumed."""


class SupplyCapExceeded(TokenError, ValidationError):
    """Raised when minting would overflow the checkpointable supply."""


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Transfer(Event):
    name = "Transfer"
    sender: str
    recipient: str
    value: int


@dataclass(frozen=True)
class Approval(Event):
    name = "Approval"
    owner: str
    spender: str
    value: int


@dataclass(frozen=True)
class DelegateChanged(Event):
    name = "DelegateChanged"
    delegator: str
    from_delegate: str
    to_delegate: str


@dataclass(frozen=True)
class DelegateVotesChanged(Event):
    name = "DelegateVotesChanged"
    delegate: str
    previous_votes: int
    new_votes: int


# ══════════════════════════════════════════════════════════════════════
#  PERMIT HELPERS
# ══════════════════════════════════════════════════════════════════════

PERMIT_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ],
}


def _as_int(word: Union[int, bytes, str]) -> int:
    if isinstance(word, int):
        return word
    if isinstance(word, str):
        return int(word, 16)
    return int.from_bytes(word, "big")


# ══════════════════════════════════════════════════════════════════════
#  GOVERNANCE TOKEN
# ══════════════════════════════════════════════════════════════════════

class GovernanceToken(Ownable):
    """
    Voting-power ledger.

    Voting power follows delegation, not balance: an account votes with
    nothing until it delegates (to itself or someone else). A balance or
    delegation change made while the chain is at block N is checkpointed
    from block N + 1, so ``get_past_votes(X, N)`` is fixed once the chain
    reaches N and later transactions cannot rewrite it.
    """

    FUNCTIONS = {
        **Ownable.FUNCTIONS,
        "transfer(address,uint256)": "transfer",
        "approve(address,uint256)": "approve",
        "transferFrom(address,address,uint256)": "transfer_from",
        "delegate(address)": "delegate",
        "mint(address,uint256)": "mint",
        "burn(address,uint256)": "burn",
        "balanceOf(address)": "balance_of",
        "totalSupply()": "total_supply",
    }

    CLOCK_MODE = "mode=blocknumber&from=default"

    def __init__(
        self,
        chain: Chain,
        deployer: str,
        name: str = TOKEN_NAME,
        symbol: str = TOKEN_SYMBOL,
        initial_supply: int = INITIAL_SUPPLY,
        decimals: int = TOKEN_DECIMALS,
    ):
        if not name:
            raise TokenError("Token name cannot be empty")
        if not symbol:
            raise TokenError("Token symbol cannot be empty")
        if initial_supply < 0:
            raise TokenError("Initial supply cannot be negative")
        super().__init__(chain, deployer)

        self.name = name
        self.symbol = symbol
        self.decimals = decimals

        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._nonces: Dict[str, int] = {}
        self._used_permits: Set[Tuple[str, int, int]] = set()

        self._delegates: Dict[str, str] = {}
        self._delegate_checkpoints: Dict[str, Trace] = {}
        self._total_checkpoints = Trace()

        if initial_supply:
            self._mint(self.deployer, initial_supply)
        logger.info(f"{symbol} deployed at {self.address}, supply={initial_supply}")

    # ── Read-only views ───────────────────────────────────────────────

    def total_supply(self) -> int:
        return self._total_checkpoints.latest()

    def balance_of(self, account: str) -> int:
        return self._balances.get(to_checksum_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get(
            (to_checksum_address(owner), to_checksum_address(spender)), 0
        )

    def nonces(self, owner: str) -> int:
        return self._nonces.get(to_checksum_address(owner), 0)

    def clock(self) -> int:
        return self.chain.clock()

    def _pending_timepoint(self) -> int:
        # Writes land on the next block, so every block up to clock() is final
        return self.clock() + 1

    # ── Votes views ───────────────────────────────────────────────────

    def delegates(self, account: str) -> str:
        return self._delegates.get(to_checksum_address(account), ZERO_ADDRESS)

    def get_votes(self, account: str) -> int:
        trace = self._delegate_checkpoints.get(to_checksum_address(account))
        return trace.latest() if trace else 0

    def _require_past(self, timepoint: int) -> None:
        current = self.clock()
        if timepoint > current:
            raise FutureLookup(
                f"Timepoint {timepoint} is in the future (clock={current})"
            )

    def get_past_votes(self, account: str, timepoint: int) -> int:
        """Voting power of *account* as of *timepoint* (0 before any checkpoint)."""
        self._require_past(timepoint)
        trace = self._delegate_checkpoints.get(to_checksum_address(account))
        return trace.upper_lookup(timepoint) if trace else 0

    def get_past_total_supply(self, timepoint: int) -> int:
        self._require_past(timepoint)
        return self._total_checkpoints.upper_lookup(timepoint)

    def num_checkpoints(self, account: str) -> int:
        trace = self._delegate_checkpoints.get(to_checksum_address(account))
        return len(trace) if trace else 0

    def checkpoints(self, account: str, pos: int) -> Checkpoint:
        trace = self._delegate_checkpoints.get(to_checksum_address(account))
        if trace is None:
            raise IndexError(f"{account} has no checkpoints")
        return trace.at(pos)

    # ── Internal bookkeeping ──────────────────────────────────────────

    def _update(self, sender: str, recipient: str, value: int) -> None:
        """Move *value* between accounts; the zero address mints / burns."""
        if sender == ZERO_ADDRESS:
            new_supply = self.total_supply() + value
            if new_supply > MAX_SAFE_SUPPLY:
                raise SupplyCapExceeded(
                    f"Total supply {new_supply} exceeds {MAX_SAFE_SUPPLY}"
                )
            self._total_checkpoints.push(self._pending_timepoint(), new_supply)
        else:
            bal = self._balances.get(sender, 0)
            if bal < value:
                raise InsufficientBalance(
                    f"{sender} balance {bal} < transfer amount {value}"
                )
            self._balances[sender] = bal - value

        if recipient == ZERO_ADDRESS:
            self._total_checkpoints.push(self._pending_timepoint(), self.total_supply() - value)
        else:
            self._balances[recipient] = self._balances.get(recipient, 0) + value

        self._emit(Transfer(sender=sender, recipient=recipient, value=value))
        self._move_delegate_votes(self.delegates(sender), self.delegates(recipient), value)

    def _move_delegate_votes(self, src: str, dst: str, amount: int) -> None:
        if src == dst or amount <= 0:
            return
        if src != ZERO_ADDRESS:
            trace = self._delegate_checkpoints.setdefault(src, Trace())
            old, new = trace.push(self._pending_timepoint(), trace.latest() - amount)
            self._emit(DelegateVotesChanged(delegate=src, previous_votes=old, new_votes=new))
        if dst != ZERO_ADDRESS:
            trace = self._delegate_checkpoints.setdefault(dst, Trace())
            old, new = trace.push(self._pending_timepoint(), trace.latest() + amount)
            self._emit(DelegateVotesChanged(delegate=dst, previous_votes=old, new_votes=new))

    def _mint(self, account: str, value: int) -> None:
        if account == ZERO_ADDRESS:
            raise InvalidReceiver("Cannot mint to the zero address")
        self._update(ZERO_ADDRESS, account, value)

    def _approve(self, owner: str, spender: str, value: int) -> None:
        if value < 0:
            raise TokenError("Allowance amount cannot be negative")
        self._allowances[(owner, spender)] = value
        self._emit(Approval(owner=owner, spender=spender, value=value))

    # ── Core ERC-20 operations ────────────────────────────────────────

    @transaction
    def transfer(self, recipient: str, value: int, *, sender: str) -> bool:
        recipient = to_checksum_address(recipient)
        if recipient == ZERO_ADDRESS:
            raise InvalidReceiver("Cannot transfer to the zero address")
        if value < 0:
            raise TokenError("Transfer amount cannot be negative")
        self._update(sender, recipient, value)
        logger.debug(f"Transfer: {sender} → {recipient} {value} {self.symbol}")
        return True

    @transaction
    def approve(self, spender: str, value: int, *, sender: str) -> bool:
        self._approve(sender, to_checksum_address(spender), value)
        return True

    @transaction
    def transfer_from(self, owner: str, recipient: str, value: int, *, sender: str) -> bool:
        owner = to_checksum_address(owner)
        recipient = to_checksum_address(recipient)
        if recipient == ZERO_ADDRESS:
            raise InvalidReceiver("Cannot transfer to the zero address")
        allowed = self._allowances.get((owner, sender), 0)
        if allowed < value:
            raise InsufficientAllowance(
                f"Allowance {allowed} < transfer amount {value}"
            )
        if allowed != 2 ** 256 - 1:
            self._allowances[(owner, sender)] = allowed - value
        self._update(owner, recipient, value)
        logger.debug(
            f"transferFrom: spender={sender} {owner} → {recipient} {value} {self.symbol}"
        )
        return True

    # ── Supply management (owner) ─────────────────────────────────────

    @transaction
    def mint(self, account: str, value: int, *, sender: str) -> None:
        self._check_owner(sender)
        self._mint(to_checksum_address(account), value)
        logger.info(f"Minted {value} {self.symbol} → {account}")

    @transaction
    def burn(self, account: str, value: int, *, sender: str) -> None:
        self._check_owner(sender)
        self._update(to_checksum_address(account), ZERO_ADDRESS, value)
        logger.info(f"Burned {value} {self.symbol} from {account}")

    # ── Delegation ────────────────────────────────────────────────────

    @transaction
    def delegate(self, delegatee: str, *, sender: str) -> None:
        """
        Point the sender's voting power at *delegatee*.

        Delegating to oneself is the normal way to activate one's own
        votes; delegating to the zero address withdraws them.
        """
        if not isinstance(delegatee, str) or not is_address(delegatee):
            raise InvalidDelegatee(f"Invalid delegatee {delegatee!r}")
        delegatee = to_checksum_address(delegatee)
        old = self.delegates(sender)
        self._delegates[sender] = delegatee
        self._emit(DelegateChanged(delegator=sender, from_delegate=old, to_delegate=delegatee))
        self._move_delegate_votes(old, delegatee, self._balances.get(sender, 0))
        logger.info(f"Delegation: {sender} → {delegatee} (was {old})")

    # ── Permit (EIP-2612) ─────────────────────────────────────────────

    def eip712_domain(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": TOKEN_EIP712_VERSION,
            "chainId": self.chain.chain_id,
            "verifyingContract": self.address,
        }

    def permit_message(
        self, owner: str, spender: str, value: int, nonce: int, deadline: int
    ) -> SignableMessage:
        """EIP-712 message an owner signs to authorize a permit."""
        return encode_typed_data(full_message={
            "types": PERMIT_TYPES,
            "primaryType": "Permit",
            "domain": self.eip712_domain(),
            "message": {
                "owner": to_checksum_address(owner),
                "spender": to_checksum_address(spender),
                "value": value,
                "nonce": nonce,
                "deadline": deadline,
            },
        })

    @transaction
    def permit(
        self,
        owner: str,
        spender: str,
        value: int,
        deadline: int,
        v: int,
        r: Union[int, bytes],
        s: Union[int, bytes],
        *,
        sender: str,
    ) -> None:
        """
        Approve *spender* on behalf of *owner* using the owner's signature.

        Any account may submit the permit. Each successful permit consumes
        the owner's current nonce.
        """
        owner = to_checksum_address(owner)
        spender = to_checksum_address(spender)
        if self.chain.timestamp > deadline:
            raise ExpiredSignature(
                f"Permit deadline {deadline} passed (now={self.chain.timestamp})"
            )

        r, s = _as_int(r), _as_int(s)
        # A consumed signature stays consumed in its malleated (N - s) form too
        if {(owner, r, s), (owner, r, SECPK1_N - s)} & self._used_permits:
            raise InvalidNonce(f"Permit signature for {owner} was already used")
        if s > SECP256K1_HALF_N:
            raise InvalidSigner("Permit signature s value is not in the lower half order")

        nonce = self._nonces.get(owner, 0)
        message = self.permit_message(owner, spender, value, nonce, deadline)
        try:
            signer = Account.recover_message(message, vrs=(v, r, s))
        except (BadSignature, KeyValidationError, ValueError) as exc:
            raise InvalidSigner(f"Malformed permit signature: {exc}") from exc
        if signer != owner:
            raise InvalidSigner(f"Permit signed by {signer}, expected {owner}")

        self._nonces[owner] = nonce + 1
        self._used_permits.add((owner, r, s))
        self._approve(owner, spender, value)
        logger.debug(f"Permit: {owner} → {spender} allowance={value} nonce={nonce}")

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "totalSupply": str(self.total_supply()),
            "owner": self.owner(),
            "holders": len([b for b in self._balances.values() if b > 0]),
            "delegates": len(self._delegate_checkpoints),
        }

    def __repr__(self) -> str:
        return f"<GovernanceToken {self.symbol} supply={self.total_supply()}>"
