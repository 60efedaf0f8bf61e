"""Incremental event fetch resuming from the last checkpoint."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from cloudstack_node.clients.cloudstack import CloudStackAPI, CloudStackAPIError
from cloudstack_node.entities.event import Checkpoint, CloudEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResult:
    new_events: tuple[CloudEvent, ...]
    checkpoint: Checkpoint | None

    @property
    def advanced(self) -> bool:
        return bool(self.new_events)


class EventFetcher:
    def __init__(self, client: CloudStackAPI):
        self.client = client

    def fetch_new(self, checkpoint: Checkpoint | None, domain_id: str | None) -> FetchResult:
        """Return events newer than ``checkpoint`` and the checkpoint to carry forward.

        ``listEvents`` is queried from the checkpoint's reference instant, which
        the API treats as inclusive; events sitting exactly on that instant were
        reported by the previous fetch and are dropped, as are events older than
        it, so the reference instant never moves backwards. When something new
        arrives the whole raw response becomes the next checkpoint.
        """
        if checkpoint is None:
            raw = self.client.list_events(domain_id)
            events = _to_events(raw)
            fresh = list(events)
        else:
            reference = checkpoint.reference_instant
            raw = self.client.list_events(domain_id, start_date=checkpoint.startdate)
            events = _to_events(raw)
            fresh = [event for event in events if event.created > reference]
            stale = sum(1 for event in events if event.created < reference)
            if stale:
                logger.warning(
                    "listEvents returned %d event(s) older than the checkpoint (%s); ignoring them",
                    stale, reference.isoformat(),
                )

        if not fresh:
            logger.debug("no new events (checkpoint=%s)", _describe(checkpoint))
            return FetchResult(new_events=(), checkpoint=checkpoint)

        fresh.sort(key=lambda event: event.created)
        updated = Checkpoint(events=events)
        logger.info(
            "fetched %d new events, checkpoint %s -> %s",
            len(fresh), _describe(checkpoint), _describe(updated),
        )
        return FetchResult(new_events=tuple(fresh), checkpoint=updated)


def _to_events(raw: list[dict]) -> tuple[CloudEvent, ...]:
    try:
        return tuple(CloudEvent(dict(item)) for item in raw or [])
    except ValueError as exc:
        raise CloudStackAPIError(f"listEvents: malformed event: {exc}", command="listEvents") from exc


def _describe(checkpoint: Checkpoint | None) -> str:
    return checkpoint.reference_instant.isoformat() if checkpoint is not None else "<none>"
