"""
Checkpoint Histories

Append-only ``(timepoint, value)`` traces with binary-search lookup, used
for per-account voting power, total supply and the quorum numerator.
"""

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..exceptions import ValidationError


class CheckpointUnorderedInsertion(ValidationError):
    """A push tried to write before the latest checkpoint."""


@dataclass(frozen=True)
class Checkpoint:
    """Value of a trace from ``key`` onward."""
    key: int
    value: int

    def to_dict(self):
        return {"fromTimepoint": self.key, "value": self.value}


@dataclass
class Trace:
    """
    Ordered checkpoint list.

    Keys are strictly increasing. A push at the latest key overwrites that
    still-open checkpoint; a push at an earlier key is rejected.
    """
    _keys: List[int] = field(default_factory=list)
    _values: List[int] = field(default_factory=list)

    def push(self, key: int, value: int) -> Tuple[int, int]:
        """Record *value* at *key*. Returns ``(old_latest, new_latest)``."""
        if self._keys:
            last_key = self._keys[-1]
            old = self._values[-1]
            if key < last_key:
                raise CheckpointUnorderedInsertion(
                    f"Checkpoint at {key} precedes latest at {last_key}"
                )
            if key == last_key:
                self._values[-1] = value
                return old, value
        else:
            old = 0
        self._keys.append(key)
        self._values.append(value)
        return old, value

    def upper_lookup(self, key: int) -> int:
        """Value at the greatest checkpoint key ≤ *key*, or 0."""
        pos = bisect_right(self._keys, key)
        return self._values[pos - 1] if pos else 0

    def latest(self) -> int:
        return self._values[-1] if self._values else 0

    def latest_checkpoint(self) -> Optional[Checkpoint]:
        if not self._keys:
            return None
        return Checkpoint(self._keys[-1], self._values[-1])

    def at(self, pos: int) -> Checkpoint:
        return Checkpoint(self._keys[pos], self._values[pos])

    def __len__(self) -> int:
        return len(self._keys)
