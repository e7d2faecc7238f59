"""
Governance Token Test Suite

Coverage:
  Checkpoints : ordered push, same-timepoint overwrite, upper lookup
  Token       : deploy, transfer, approve, transferFrom, mint / burn
  Votes       : delegation, vote movement on transfer, historical lookups,
                future-lookup rejection, total-supply history
  Permit      : EIP-712 signed approvals, nonce consumption, replay,
                expiry and wrong-signer rejection
"""

import os
import sys

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_keys.constants import SECPK1_N
from eth_utils import to_checksum_address

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from snapvote.chain import Chain
from snapvote.constants import (
    INITIAL_SUPPLY,
    LOCAL_CHAIN_ID,
    MAX_UINT256,
    TOKEN_NAME,
    TOKEN_SYMBOL,
    ZERO_ADDRESS,
)
from snapvote.contracts.base import OwnableUnauthorizedAccount
from snapvote.events import filter_events, parse_event_by_name
from snapvote.exceptions import ReplayError, ValidationError
from snapvote.tokens import (
    Checkpoint,
    CheckpointUnorderedInsertion,
    ExpiredSignature,
    FutureLookup,
    GovernanceToken,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidDelegatee,
    InvalidNonce,
    InvalidReceiver,
    InvalidSigner,
    TokenError,
    Trace,
)


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

GENESIS_TS = 1_700_000_000
TOKEN = 10 ** 18

OWNER_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32
DEPLOYER = Account.from_key(OWNER_KEY).address
MALLORY = Account.from_key(OTHER_KEY).address
ALICE = to_checksum_address("0x" + "a1" * 20)
BOB = to_checksum_address("0x" + "b2" * 20)
CAROL = to_checksum_address("0x" + "c3" * 20)


def make_token(supply=INITIAL_SUPPLY, **kwargs):
    """Fresh chain plus a token minted to DEPLOYER."""
    chain = Chain(timestamp=GENESIS_TS)
    token = GovernanceToken(chain, DEPLOYER, initial_supply=supply, **kwargs)
    return chain, token


def sign_permit(token, key, owner, spender, value, nonce, deadline):
    """Sign an EIP-2612 permit the way a wallet would."""
    message = encode_typed_data(full_message={
        "types": {
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
        },
        "primaryType": "Permit",
        "domain": {
            "name": TOKEN_NAME,
            "version": "1",
            "chainId": LOCAL_CHAIN_ID,
            "verifyingContract": token.address,
        },
        "message": {
            "owner": owner,
            "spender": spender,
            "value": value,
            "nonce": nonce,
            "deadline": deadline,
        },
    })
    signed = Account.sign_message(message, key)
    return signed.v, signed.r, signed.s


# ══════════════════════════════════════════════════════════════════════
#  CHECKPOINTS
# ══════════════════════════════════════════════════════════════════════


class TestTrace:
    """Ordered checkpoint history."""

    def test_empty_trace(self):
        trace = Trace()
        assert len(trace) == 0
        assert trace.latest() == 0
        assert trace.latest_checkpoint() is None
        assert trace.upper_lookup(100) == 0

    def test_push_returns_old_and_new(self):
        trace = Trace()
        assert trace.push(1, 10) == (0, 10)
        assert trace.push(3, 25) == (10, 25)
        assert len(trace) == 2

    def test_same_key_overwrites(self):
        trace = Trace()
        trace.push(5, 10)
        assert trace.push(5, 12) == (10, 12)
        assert len(trace) == 1
        assert trace.latest() == 12

    def test_earlier_key_rejected(self):
        trace = Trace()
        trace.push(5, 10)
        with pytest.raises(CheckpointUnorderedInsertion, match="precedes"):
            trace.push(4, 1)

    def test_upper_lookup(self):
        trace = Trace()
        trace.push(2, 100)
        trace.push(5, 50)
        trace.push(9, 75)
        assert trace.upper_lookup(1) == 0
        assert trace.upper_lookup(2) == 100
        assert trace.upper_lookup(4) == 100
        assert trace.upper_lookup(5) == 50
        assert trace.upper_lookup(8) == 50
        assert trace.upper_lookup(1000) == 75

    def test_at_and_to_dict(self):
        trace = Trace()
        trace.push(7, 3)
        assert trace.at(0) == Checkpoint(7, 3)
        assert trace.at(0).to_dict() == {"fromTimepoint": 7, "value": 3}


# ══════════════════════════════════════════════════════════════════════
#  ERC-20 BOOKKEEPING
# ══════════════════════════════════════════════════════════════════════


class TestTokenDeploy:
    """Deployment and basic properties."""

    def test_deploy_basic(self):
        _, token = make_token()
        assert token.name == TOKEN_NAME
        assert token.symbol == TOKEN_SYMBOL
        assert token.decimals == 18
        assert token.total_supply() == INITIAL_SUPPLY
        assert token.balance_of(DEPLOYER) == INITIAL_SUPPLY
        assert token.owner() == DEPLOYER

    def test_no_votes_before_delegation(self):
        _, token = make_token()
        assert token.get_votes(DEPLOYER) == 0
        assert token.delegates(DEPLOYER) == ZERO_ADDRESS

    def test_deploy_empty_name_raises(self):
        with pytest.raises(TokenError, match="name cannot be empty"):
            make_token(name="")

    def test_deploy_negative_supply_raises(self):
        with pytest.raises(TokenError, match="negative"):
            make_token(supply=-1)

    def test_clock_follows_block_number(self):
        chain, token = make_token()
        assert token.clock() == 0
        chain.mine(3)
        assert token.clock() == 3
        assert token.CLOCK_MODE == "mode=blocknumber&from=default"

    def test_to_dict_and_repr(self):
        _, token = make_token()
        d = token.to_dict()
        assert d["symbol"] == TOKEN_SYMBOL
        assert d["totalSupply"] == str(INITIAL_SUPPLY)
        assert d["holders"] == 1
        assert TOKEN_SYMBOL in repr(token)


class TestTokenTransfer:
    """transfer / approve / transferFrom."""

    def test_basic_transfer(self):
        _, token = make_token()
        receipt = token.transfer(ALICE, 100 * TOKEN, sender=DEPLOYER)
        assert receipt.return_value is True
        assert token.balance_of(ALICE) == 100 * TOKEN
        assert token.balance_of(DEPLOYER) == INITIAL_SUPPLY - 100 * TOKEN
        event = parse_event_by_name(receipt.logs, "Transfer")
        assert event.args == {"sender": DEPLOYER, "recipient": ALICE, "value": 100 * TOKEN}

    def test_transfer_insufficient_balance_rolls_back(self):
        chain, token = make_token()
        logs_before = chain.log_count
        with pytest.raises(InsufficientBalance):
            token.transfer(BOB, 1, sender=ALICE)
        assert token.balance_of(BOB) == 0
        assert chain.log_count == logs_before

    def test_insufficient_balance_is_validation_error(self):
        _, token = make_token()
        with pytest.raises(ValidationError):
            token.transfer(BOB, INITIAL_SUPPLY + 1, sender=DEPLOYER)

    def test_transfer_to_zero_address_raises(self):
        _, token = make_token()
        with pytest.raises(InvalidReceiver, match="zero address"):
            token.transfer(ZERO_ADDRESS, 1, sender=DEPLOYER)

    def test_lowercase_recipient_normalized(self):
        _, token = make_token()
        token.transfer(ALICE.lower(), 5, sender=DEPLOYER)
        assert token.balance_of(ALICE) == 5

    def test_approve_and_transfer_from(self):
        _, token = make_token()
        token.approve(ALICE, 50, sender=DEPLOYER)
        assert token.allowance(DEPLOYER, ALICE) == 50
        token.transfer_from(DEPLOYER, BOB, 30, sender=ALICE)
        assert token.balance_of(BOB) == 30
        assert token.allowance(DEPLOYER, ALICE) == 20

    def test_transfer_from_insufficient_allowance(self):
        _, token = make_token()
        token.approve(ALICE, 10, sender=DEPLOYER)
        with pytest.raises(InsufficientAllowance):
            token.transfer_from(DEPLOYER, BOB, 11, sender=ALICE)
        assert token.allowance(DEPLOYER, ALICE) == 10

    def test_infinite_allowance_not_decremented(self):
        _, token = make_token()
        token.approve(ALICE, MAX_UINT256, sender=DEPLOYER)
        token.transfer_from(DEPLOYER, BOB, 10, sender=ALICE)
        assert token.allowance(DEPLOYER, ALICE) == MAX_UINT256


class TestTokenSupply:
    """Owner-only mint and burn with total-supply checkpoints."""

    def test_mint_by_owner(self):
        chain, token = make_token()
        chain.mine(2)
        token.mint(ALICE, 1000, sender=DEPLOYER)
        assert token.balance_of(ALICE) == 1000
        assert token.total_supply() == INITIAL_SUPPLY + 1000

    def test_mint_by_non_owner_raises(self):
        _, token = make_token()
        with pytest.raises(OwnableUnauthorizedAccount):
            token.mint(ALICE, 1000, sender=ALICE)

    def test_burn_reduces_supply(self):
        _, token = make_token()
        token.burn(DEPLOYER, 1000, sender=DEPLOYER)
        assert token.total_supply() == INITIAL_SUPPLY - 1000

    def test_past_total_supply(self):
        chain, token = make_token()
        chain.mine(1)
        token.mint(ALICE, 500, sender=DEPLOYER)
        chain.mine(1)
        # block 0 mint counts from block 1, block 1 mint from block 2
        assert token.get_past_total_supply(0) == 0
        assert token.get_past_total_supply(1) == INITIAL_SUPPLY
        assert token.get_past_total_supply(2) == INITIAL_SUPPLY + 500


# ══════════════════════════════════════════════════════════════════════
#  VOTES
# ══════════════════════════════════════════════════════════════════════


class TestDelegation:
    """delegate() and voting power movement."""

    def test_self_delegation_activates_votes(self):
        _, token = make_token()
        receipt = token.delegate(DEPLOYER, sender=DEPLOYER)
        assert token.get_votes(DEPLOYER) == INITIAL_SUPPLY
        assert token.delegates(DEPLOYER) == DEPLOYER
        changed = parse_event_by_name(receipt.logs, "DelegateChanged")
        assert changed.args["from_delegate"] == ZERO_ADDRESS
        votes = parse_event_by_name(receipt.logs, "DelegateVotesChanged")
        assert votes.args["new_votes"] == INITIAL_SUPPLY

    def test_delegate_to_other(self):
        _, token = make_token()
        token.delegate(ALICE, sender=DEPLOYER)
        assert token.get_votes(ALICE) == INITIAL_SUPPLY
        assert token.get_votes(DEPLOYER) == 0

    def test_redelegation_moves_votes(self):
        _, token = make_token()
        token.delegate(ALICE, sender=DEPLOYER)
        token.delegate(BOB, sender=DEPLOYER)
        assert token.get_votes(ALICE) == 0
        assert token.get_votes(BOB) == INITIAL_SUPPLY

    def test_delegate_to_zero_removes_votes(self):
        _, token = make_token()
        token.delegate(DEPLOYER, sender=DEPLOYER)
        token.delegate(ZERO_ADDRESS, sender=DEPLOYER)
        assert token.get_votes(DEPLOYER) == 0

    def test_delegation_loops_are_harmless(self):
        _, token = make_token()
        token.transfer(ALICE, 100, sender=DEPLOYER)
        token.delegate(ALICE, sender=DEPLOYER)
        token.delegate(DEPLOYER, sender=ALICE)
        assert token.get_votes(ALICE) == INITIAL_SUPPLY - 100
        assert token.get_votes(DEPLOYER) == 100

    def test_invalid_delegatee_raises(self):
        _, token = make_token()
        with pytest.raises(InvalidDelegatee):
            token.delegate("0x1234", sender=DEPLOYER)

    def test_transfer_moves_delegated_votes(self):
        _, token = make_token()
        token.delegate(DEPLOYER, sender=DEPLOYER)
        token.delegate(ALICE, sender=BOB)
        token.transfer(BOB, 300, sender=DEPLOYER)
        assert token.get_votes(DEPLOYER) == INITIAL_SUPPLY - 300
        assert token.get_votes(ALICE) == 300

    def test_transfer_to_undelegated_drops_votes(self):
        _, token = make_token()
        token.delegate(DEPLOYER, sender=DEPLOYER)
        token.transfer(CAROL, 300, sender=DEPLOYER)
        assert token.get_votes(DEPLOYER) == INITIAL_SUPPLY - 300
        assert token.get_votes(CAROL) == 0


class TestHistoricalVotes:
    """Checkpointed lookups."""

    def test_past_votes_follow_checkpoints(self):
        chain, token = make_token()
        token.delegate(DEPLOYER, sender=DEPLOYER)
        chain.mine(1)
        token.transfer(ALICE, 1000, sender=DEPLOYER)
        chain.mine(1)
        assert token.get_past_votes(DEPLOYER, 0) == 0
        assert token.get_past_votes(DEPLOYER, 1) == INITIAL_SUPPLY
        assert token.get_past_votes(DEPLOYER, 2) == INITIAL_SUPPLY - 1000

    def test_no_checkpoint_means_zero(self):
        chain, token = make_token()
        chain.mine(5)
        assert token.get_past_votes(ALICE, 3) == 0

    def test_future_lookup_raises(self):
        chain, token = make_token()
        chain.mine(2)
        with pytest.raises(FutureLookup, match="future"):
            token.get_past_votes(DEPLOYER, 3)
        with pytest.raises(FutureLookup):
            token.get_past_total_supply(3)

    def test_current_block_lookup_allowed(self):
        chain, token = make_token()
        token.delegate(DEPLOYER, sender=DEPLOYER)
        chain.mine(2)
        assert token.get_past_votes(DEPLOYER, 2) == INITIAL_SUPPLY

    def test_same_block_writes_share_checkpoint(self):
        chain, token = make_token()
        token.delegate(DEPLOYER, sender=DEPLOYER)
        token.transfer(ALICE, 10, sender=DEPLOYER)
        token.transfer(ALICE, 10, sender=DEPLOYER)
        assert token.num_checkpoints(DEPLOYER) == 1
        chain.mine(1)
        token.transfer(ALICE, 10, sender=DEPLOYER)
        assert token.num_checkpoints(DEPLOYER) == 2
        assert token.checkpoints(DEPLOYER, 0) == Checkpoint(1, INITIAL_SUPPLY - 20)
        assert token.checkpoints(DEPLOYER, 1) == Checkpoint(2, INITIAL_SUPPLY - 30)

    def test_reached_block_cannot_be_rewritten(self):
        chain, token = make_token()
        token.delegate(DEPLOYER, sender=DEPLOYER)
        chain.mine(1)
        assert token.get_past_votes(DEPLOYER, 1) == INITIAL_SUPPLY
        token.transfer(ALICE, INITIAL_SUPPLY, sender=DEPLOYER)
        token.delegate(ALICE, sender=ALICE)
        assert token.get_votes(DEPLOYER) == 0
        assert token.get_votes(ALICE) == INITIAL_SUPPLY
        assert token.get_past_votes(DEPLOYER, 1) == INITIAL_SUPPLY
        assert token.get_past_votes(ALICE, 1) == 0
        chain.mine(1)
        assert token.get_past_votes(ALICE, 2) == INITIAL_SUPPLY


# ══════════════════════════════════════════════════════════════════════
#  PERMIT
# ══════════════════════════════════════════════════════════════════════


class TestPermit:
    """EIP-2612 signed approvals."""

    def test_nonce_starts_at_zero(self):
        _, token = make_token()
        assert token.nonces(DEPLOYER) == 0

    def test_permit_sets_allowance_and_increments_nonce(self):
        _, token = make_token()
        value = 100 * TOKEN
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, value, 0, MAX_UINT256)
        receipt = token.permit(DEPLOYER, ALICE, value, MAX_UINT256, v, r, s, sender=DEPLOYER)
        assert token.nonces(DEPLOYER) == 1
        assert token.allowance(DEPLOYER, ALICE) == value
        assert parse_event_by_name(receipt.logs, "Approval").args["value"] == value

    def test_permit_relayed_by_third_party(self):
        _, token = make_token()
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, 5, 0, MAX_UINT256)
        token.permit(DEPLOYER, ALICE, 5, MAX_UINT256, v, r, s, sender=BOB)
        assert token.allowance(DEPLOYER, ALICE) == 5

    def test_permit_accepts_bytes_signature_words(self):
        _, token = make_token()
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, 5, 0, MAX_UINT256)
        token.permit(
            DEPLOYER, ALICE, 5, MAX_UINT256, v,
            r.to_bytes(32, "big"), s.to_bytes(32, "big"), sender=DEPLOYER,
        )
        assert token.nonces(DEPLOYER) == 1

    def test_replayed_permit_rejected(self):
        _, token = make_token()
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, 5, 0, MAX_UINT256)
        token.permit(DEPLOYER, ALICE, 5, MAX_UINT256, v, r, s, sender=DEPLOYER)
        with pytest.raises(InvalidNonce):
            token.permit(DEPLOYER, ALICE, 5, MAX_UINT256, v, r, s, sender=DEPLOYER)
        assert token.nonces(DEPLOYER) == 1

    def test_replay_is_replay_error(self):
        _, token = make_token()
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, 5, 0, MAX_UINT256)
        token.permit(DEPLOYER, ALICE, 5, MAX_UINT256, v, r, s, sender=DEPLOYER)
        with pytest.raises(ReplayError):
            token.permit(DEPLOYER, ALICE, 5, MAX_UINT256, v, r, s, sender=DEPLOYER)

    def test_malleated_replay_rejected(self):
        _, token = make_token()
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, 5, 0, MAX_UINT256)
        token.permit(DEPLOYER, ALICE, 5, MAX_UINT256, v, r, s, sender=DEPLOYER)
        with pytest.raises(InvalidNonce):
            token.permit(
                DEPLOYER, ALICE, 5, MAX_UINT256, 55 - v, r, SECPK1_N - s, sender=DEPLOYER,
            )
        assert token.nonces(DEPLOYER) == 1

    def test_high_s_signature_rejected(self):
        _, token = make_token()
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, 5, 0, MAX_UINT256)
        with pytest.raises(InvalidSigner, match="lower half"):
            token.permit(
                DEPLOYER, ALICE, 5, MAX_UINT256, 55 - v, r, SECPK1_N - s, sender=DEPLOYER,
            )
        assert token.nonces(DEPLOYER) == 0

    def test_expired_permit_rejected(self):
        chain, token = make_token()
        deadline = chain.timestamp - 1
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, 5, 0, deadline)
        with pytest.raises(ExpiredSignature, match="deadline"):
            token.permit(DEPLOYER, ALICE, 5, deadline, v, r, s, sender=DEPLOYER)
        assert token.nonces(DEPLOYER) == 0

    def test_wrong_signer_rejected(self):
        _, token = make_token()
        v, r, s = sign_permit(token, OTHER_KEY, DEPLOYER, ALICE, 5, 0, MAX_UINT256)
        with pytest.raises(InvalidSigner):
            token.permit(DEPLOYER, ALICE, 5, MAX_UINT256, v, r, s, sender=DEPLOYER)
        assert token.allowance(DEPLOYER, ALICE) == 0

    def test_tampered_value_rejected(self):
        _, token = make_token()
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, 5, 0, MAX_UINT256)
        with pytest.raises(InvalidSigner):
            token.permit(DEPLOYER, ALICE, 500, MAX_UINT256, v, r, s, sender=DEPLOYER)

    def test_second_permit_uses_next_nonce(self):
        _, token = make_token()
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, 5, 0, MAX_UINT256)
        token.permit(DEPLOYER, ALICE, 5, MAX_UINT256, v, r, s, sender=DEPLOYER)
        v, r, s = sign_permit(token, OWNER_KEY, DEPLOYER, ALICE, 9, 1, MAX_UINT256)
        token.permit(DEPLOYER, ALICE, 9, MAX_UINT256, v, r, s, sender=DEPLOYER)
        assert token.nonces(DEPLOYER) == 2
        assert token.allowance(DEPLOYER, ALICE) == 9

    def test_domain(self):
        _, token = make_token()
        domain = token.eip712_domain()
        assert domain == {
            "name": TOKEN_NAME,
            "version": "1",
            "chainId": LOCAL_CHAIN_ID,
            "verifyingContract": token.address,
        }
        assert len(filter_events(token.chain.logs, "Transfer")) == 1
