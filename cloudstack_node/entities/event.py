from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

STARTDATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_created(value: Any) -> datetime:
    """Parse a CloudStack ``created`` value into an aware datetime.

    CloudStack writes ``2014-03-11T10:22:33+0900``; ISO-8601 with a colon in the
    offset is accepted too. Naive values are read as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            parsed = datetime.strptime(text, "%Y-%m-%dT%H:%M:%S%z")
        except ValueError:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    else:
        raise ValueError(f"unparseable 'created' value: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class CloudEvent:
    """A CloudStack event exactly as the API returned it."""
    attributes: dict[str, Any]
    created: datetime = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", copy.deepcopy(dict(self.attributes)))
        if "created" not in self.attributes:
            raise ValueError("event is missing 'created'")
        object.__setattr__(self, "created", parse_created(self.attributes["created"]))

    @property
    def epoch(self) -> int:
        return int(self.created.timestamp())


@dataclass(frozen=True)
class Checkpoint:
    """Raw event list of the last fetch that produced new events.

    The reference instant is the latest ``created`` in that list; the next
    fetch resumes from it and drops the events sitting exactly on it.
    """
    events: tuple[CloudEvent, ...]

    def __post_init__(self) -> None:
        if not self.events:
            raise ValueError("a checkpoint needs at least one event")

    @classmethod
    def from_payload(cls, payload: Iterable[dict[str, Any]]) -> "Checkpoint":
        return cls(events=tuple(CloudEvent(dict(item)) for item in payload))

    @property
    def reference_event(self) -> CloudEvent:
        return max(self.events, key=lambda event: event.created)

    @property
    def reference_instant(self) -> datetime:
        return self.reference_event.created

    @property
    def startdate(self) -> str:
        # Formatted in the reference event's own offset, as the API echoes it.
        return self.reference_instant.strftime(STARTDATE_FORMAT)

    def to_payload(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(event.attributes) for event in self.events]
