"""
Snapvote Constants

Protocol parameters for the token, governor, timelock and airdrop, plus the
settings that may be overridden from a ``.env`` file in the working
directory (network selection and logging).
"""
from dotenv import dotenv_values

# ==================================================================================
# .ENV OVERRIDES
# ==================================================================================
_env = dotenv_values(".env")

ENV_DEFAULTS = {
    'SNAPVOTE_NETWORK':                'localhost',
    'SNAPVOTE_DEPLOYMENTS_DIR':        'deployments',
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%d %H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'true',
    'LOG_FILE_OUTPUT':                 'false',
}

LOG_MAX_FILE_SIZE = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3


class EnvSetting(str):
    """A ``.env`` value that remembers the built-in default it replaced."""

    def __new__(cls, value, default):
        obj = super().__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default


class EnvFlag(int):
    """Boolean ``.env`` value; ``"true"``/``"1"``/``"yes"`` switch it on."""

    TRUTHY = {'true', '1', 'yes', 'on'}

    def __new__(cls, value, default):
        obj = super().__new__(cls, cls.parse(value))
        obj._default = cls.parse(default)
        return obj

    @classmethod
    def parse(cls, raw) -> bool:
        return str(raw).strip().casefold() in cls.TRUTHY

    def default(self):
        return self._default

    def __repr__(self):
        return repr(bool(self))

    __str__ = __repr__


def _load(key: str):
    default = ENV_DEFAULTS[key]
    raw = _env.get(key)
    value = default if raw is None or not raw.strip() else raw.strip()
    if default.casefold() in {'true', 'false'}:
        return EnvFlag(value, default)
    return EnvSetting(value, default)


SNAPVOTE_NETWORK = _load('SNAPVOTE_NETWORK')
SNAPVOTE_DEPLOYMENTS_DIR = _load('SNAPVOTE_DEPLOYMENTS_DIR')
LOG_LEVEL = _load('LOG_LEVEL')
LOG_FORMAT = _load('LOG_FORMAT')
LOG_DATE_FORMAT = _load('LOG_DATE_FORMAT')
LOG_CONSOLE_HIGHLIGHTING = _load('LOG_CONSOLE_HIGHLIGHTING')
LOG_FILE_OUTPUT = _load('LOG_FILE_OUTPUT')


# ==================================================================================
# CHAIN PARAMETERS
# ==================================================================================
LOCAL_CHAIN_ID = 31337
SECONDS_PER_BLOCK = 1
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
ZERO_BYTES32 = b'\x00' * 32


# ==================================================================================
# TOKEN PARAMETERS
# ==================================================================================
TOKEN_NAME = 'GovernanceToken'
TOKEN_SYMBOL = 'GT'
TOKEN_DECIMALS = 18
TOKEN_EIP712_VERSION = '1'
INITIAL_SUPPLY = 1_000_000 * 10 ** TOKEN_DECIMALS
MAX_UINT256 = 2 ** 256 - 1


# ==================================================================================
# GOVERNANCE PARAMETERS
# ==================================================================================
GOVERNOR_NAME = 'GovernorContract'
VOTING_DELAY = 1            # blocks between proposal and snapshot
VOTING_PERIOD = 5           # blocks the vote stays open
QUORUM_PERCENTAGE = 4       # of total supply at snapshot
QUORUM_DENOMINATOR = 100
PROPOSAL_THRESHOLD = 0      # votes required to propose

VOTE_AGAINST = 0
VOTE_FOR = 1
VOTE_ABSTAIN = 2


# ==================================================================================
# TIMELOCK PARAMETERS
# ==================================================================================
MIN_DELAY = 3600            # seconds between schedule and execution


# ==================================================================================
# AIRDROP PARAMETERS
# ==================================================================================
AIRDROP_AMOUNT = 900_000 * 10 ** TOKEN_DECIMALS
MERKLE_TREE_FORMAT = 'standard-v1'
