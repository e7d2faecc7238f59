"""
Box — a minimal governed target.

Stores a single integer that only its owner (the timelock, once deployed
through governance) may change.
"""

from dataclasses import dataclass

from ..chain import Chain
from ..events import Event
from ..logger import get_logger
from .base import Ownable, transaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class ValueChanged(Event):
    name = "ValueChanged"
    new_value: int


class Box(Ownable):
    """Owner-gated single-value store."""

    FUNCTIONS = {
        **Ownable.FUNCTIONS,
        "store(uint256)": "store",
        "retrieve()": "retrieve",
    }

    def __init__(self, chain: Chain, deployer: str, initial_owner: str = None):
        super().__init__(chain, deployer, initial_owner)
        self._value = 0

    @transaction
    def store(self, new_value: int, *, sender: str) -> None:
        self._check_owner(sender)
        self._value = new_value
        self._emit(ValueChanged(new_value=new_value))
        logger.info(f"Box {self.address} value → {new_value}")

    def retrieve(self) -> int:
        return self._value
