"""
Role-Based Access Control

Capability sets per principal. Each role has an admin role whose holders
may grant and revoke it. Role identifiers match the usual
``keccak256("<NAME>_ROLE")`` convention (``bytes32(0)`` for the default
admin) so roles can also be addressed through raw calldata.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Set, Union

from eth_utils import to_checksum_address

from ..chain import Chain
from ..constants import ZERO_ADDRESS, ZERO_BYTES32
from ..contracts.base import Contract, transaction
from ..crypto.hashing import keccak_text
from ..events import Event
from ..exceptions import AuthorizationError, SnapvoteError, ValidationError
from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class AccessControlError(SnapvoteError):
    """Base access-control error."""


class MissingRole(AccessControlError, AuthorizationError):
    """Caller does not hold the required role."""


class BadConfirmation(AccessControlError, ValidationError):
    """renounce_role called for an account other than the caller."""


class UnknownRole(AccessControlError, ValidationError):
    """Role identifier does not name a known role."""


# ══════════════════════════════════════════════════════════════════════
#  ROLES
# ══════════════════════════════════════════════════════════════════════

class Role(Enum):
    ADMIN = "DEFAULT_ADMIN_ROLE"
    PROPOSER = "PROPOSER_ROLE"
    EXECUTOR = "EXECUTOR_ROLE"
    CANCELLER = "CANCELLER_ROLE"

    @property
    def role_id(self) -> bytes:
        if self is Role.ADMIN:
            return ZERO_BYTES32
        return keccak_text(self.value)

    @classmethod
    def parse(cls, role: Union["Role", bytes, str]) -> "Role":
        """Accept a Role, its 32-byte id, or its name."""
        if isinstance(role, Role):
            return role
        if isinstance(role, str):
            for member in cls:
                if role in (member.name, member.value):
                    return member
            raise UnknownRole(f"Unknown role {role!r}")
        for member in cls:
            if member.role_id == bytes(role):
                return member
        raise UnknownRole(f"Unknown role id 0x{bytes(role).hex()}")


RoleLike = Union[Role, bytes, str]


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RoleGranted(Event):
    name = "RoleGranted"
    role: str
    account: str
    sender: str


@dataclass(frozen=True)
class RoleRevoked(Event):
    name = "RoleRevoked"
    role: str
    account: str
    sender: str


# ══════════════════════════════════════════════════════════════════════
#  ACCESS CONTROL
# ══════════════════════════════════════════════════════════════════════

class AccessControl(Contract):
    """
    Contract base with role membership.

    Every role is administered by ``Role.ADMIN`` unless reassigned with
    ``_set_role_admin``.
    """

    FUNCTIONS = {
        "hasRole(bytes32,address)": "has_role",
        "getRoleAdmin(bytes32)": "get_role_admin_id",
        "grantRole(bytes32,address)": "grant_role",
        "revokeRole(bytes32,address)": "revoke_role",
        "renounceRole(bytes32,address)": "renounce_role",
    }

    def __init__(self, chain: Chain, deployer: str):
        super().__init__(chain, deployer)
        self._members: Dict[Role, Set[str]] = {role: set() for role in Role}
        self._role_admins: Dict[Role, Role] = {role: Role.ADMIN for role in Role}

    # ── Queries ───────────────────────────────────────────────────────

    def has_role(self, role: RoleLike, account: str) -> bool:
        return to_checksum_address(account) in self._members[Role.parse(role)]

    def get_role_admin(self, role: RoleLike) -> Role:
        return self._role_admins[Role.parse(role)]

    def get_role_admin_id(self, role: RoleLike) -> bytes:
        return self.get_role_admin(role).role_id

    def get_role_members(self, role: RoleLike) -> List[str]:
        return sorted(self._members[Role.parse(role)])

    def _check_role(self, role: Role, account: str) -> None:
        if not self.has_role(role, account):
            raise MissingRole(f"{account} is missing role {role.value}")

    def _check_role_or_open(self, role: Role, account: str) -> None:
        """Role check that passes for everyone once the zero address holds the role."""
        if self.has_role(role, ZERO_ADDRESS):
            return
        self._check_role(role, account)

    # ── Internal mutation ─────────────────────────────────────────────

    def _set_role_admin(self, role: Role, admin_role: Role) -> None:
        self._role_admins[role] = admin_role

    def _grant_role(self, role: Role, account: str, sender: str) -> bool:
        account = to_checksum_address(account)
        if account in self._members[role]:
            return False
        self._members[role].add(account)
        self._emit(RoleGranted(role=role.value, account=account, sender=sender))
        logger.info(f"{type(self).__name__} granted {role.value} to {account}")
        return True

    def _revoke_role(self, role: Role, account: str, sender: str) -> bool:
        account = to_checksum_address(account)
        if account not in self._members[role]:
            return False
        self._members[role].discard(account)
        self._emit(RoleRevoked(role=role.value, account=account, sender=sender))
        logger.warning(f"{type(self).__name__} revoked {role.value} from {account}")
        return True

    # ── Transactions ──────────────────────────────────────────────────

    @transaction
    def grant_role(self, role: RoleLike, account: str, *, sender: str) -> bool:
        role = Role.parse(role)
        self._check_role(self.get_role_admin(role), sender)
        return self._grant_role(role, account, sender)

    @transaction
    def revoke_role(self, role: RoleLike, account: str, *, sender: str) -> bool:
        role = Role.parse(role)
        self._check_role(self.get_role_admin(role), sender)
        return self._revoke_role(role, account, sender)

    @transaction
    def renounce_role(self, role: RoleLike, caller_confirmation: str, *, sender: str) -> bool:
        """Drop one of the caller's own roles. *caller_confirmation* must be the caller."""
        if to_checksum_address(caller_confirmation) != sender:
            raise BadConfirmation("Roles can only be renounced for self")
        return self._revoke_role(Role.parse(role), sender, sender)
