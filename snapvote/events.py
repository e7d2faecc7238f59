"""
Emitted Events

Every contract records observable facts as frozen event dataclasses
appended to the chain log. Callers that need a generated value (a new
proposal id, a timelock operation id) scan a receipt's logs by name.
"""

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Iterable, List

from .exceptions import SnapvoteError


class EventNotFound(SnapvoteError):
    """Raised when no log in a receipt carries the requested event."""


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass(frozen=True)
class Event:
    """Base class for emitted events. Subclasses set ``name``."""
    name: ClassVar[str] = "Event"

    @property
    def args(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"event": self.name}
        for key, value in self.args.items():
            data[_camel(key)] = _jsonable(value)
        return data


@dataclass(frozen=True)
class Log:
    """An event as recorded on chain, tagged with emitter and block."""
    address: str
    block_number: int
    event: Event

    @property
    def name(self) -> str:
        return self.event.name

    @property
    def args(self) -> Dict[str, Any]:
        return self.event.args

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "blockNumber": self.block_number,
            **self.event.to_dict(),
        }


def filter_events(logs: Iterable[Log], event_name: str) -> List[Log]:
    """All logs whose event is named *event_name*, in emission order."""
    return [log for log in logs if log.name == event_name]


def parse_event_by_name(logs: Iterable[Log], event_name: str) -> Log:
    """
    Return the first log carrying *event_name*.

    Raises EventNotFound if no such event was emitted.
    """
    for log in logs:
        if log.name == event_name:
            return log
    raise EventNotFound(f"Event {event_name} not found in transaction logs")
