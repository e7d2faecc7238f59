"""
Merkle Airdrop — Claim Ledger

Distributes a fixed token allocation to a pre-committed recipient set.
The recipient list lives off-chain; only its Merkle root is stored. Each
recipient claims once by presenting ``(account, amount)`` and a proof.
"""

from dataclasses import dataclass
from typing import Any, Dict, Sequence, Set

from eth_utils import to_checksum_address

from ..chain import Chain
from ..contracts.base import Contract, transaction
from ..crypto.hashing import to_bytes32
from ..events import Event
from ..exceptions import ReplayError, SnapvoteError, ValidationError
from ..logger import get_logger
from ..tokens.governance_token import GovernanceToken
from .merkle import BytesLike, MerkleTreeError, leaf_hash, verify_proof

logger = get_logger(__name__)

CLAIM_LEAF_ENCODING = ("address", "uint256")


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class AirdropError(SnapvoteError):
    """Base exception for airdrop claims."""


class AlreadyClaimed(AirdropError, ReplayError):
    """Raised when an account claims a second time."""


class InvalidProof(AirdropError, ValidationError):
    """Raised when ``(account, amount)`` does not prove into the root."""


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Claimed(Event):
    name = "Claimed"
    account: str
    amount: int


# ══════════════════════════════════════════════════════════════════════
#  AIRDROP
# ══════════════════════════════════════════════════════════════════════

class MerkleAirdrop(Contract):
    """
    One-shot claim ledger.

    The airdrop pays out of its own token balance, so it must be funded
    (a plain token transfer to its address) before claims succeed.
    """

    FUNCTIONS = {
        "claim(address,uint256,bytes32[])": "claim",
        "hasClaimed(address)": "has_claimed",
        "merkleRoot()": "merkle_root",
    }
    LINKS = ("token",)

    def __init__(self, chain: Chain, deployer: str, token: GovernanceToken, merkle_root: BytesLike):
        super().__init__(chain, deployer)
        self.token = token
        self._merkle_root = to_bytes32(merkle_root)
        self._claimed: Set[str] = set()
        logger.info(
            f"MerkleAirdrop deployed at {self.address} "
            f"token={token.address} root=0x{self._merkle_root.hex()}"
        )

    def merkle_root(self) -> bytes:
        return self._merkle_root

    def has_claimed(self, account: str) -> bool:
        return to_checksum_address(account) in self._claimed

    @transaction
    def claim(self, account: str, amount: int, proof: Sequence[BytesLike], *, sender: str) -> None:
        """
        Pay *amount* to *account* if the pair is committed in the root.

        Anyone may submit the claim; tokens always go to *account*.
        """
        account = to_checksum_address(account)
        if account in self._claimed:
            raise AlreadyClaimed(f"{account} has already claimed")

        try:
            leaf = leaf_hash(CLAIM_LEAF_ENCODING, (account, amount))
            valid = verify_proof(proof, self._merkle_root, leaf)
        except MerkleTreeError as exc:
            raise InvalidProof(f"Malformed claim for {account}: {exc}") from exc
        if not valid:
            raise InvalidProof(f"Proof does not match root for {account}")

        self._claimed.add(account)
        self.token.transfer(account, amount, sender=self.address)
        self._emit(Claimed(account=account, amount=amount))
        logger.info(f"Airdrop claim: {account} received {amount} {self.token.symbol}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "token": self.token.address,
            "merkleRoot": "0x" + self._merkle_root.hex(),
            "claimed": len(self._claimed),
            "remaining": str(self.token.balance_of(self.address)),
        }
