from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlmodel import Session

from cloudstack_node.db.tables import CollectorStateRow
from cloudstack_node.entities.event import Checkpoint
from cloudstack_node.interfaces.checkpoint_store import CheckpointStore

CHECKPOINT_KIND = "checkpoint"
BASELINE_KIND = "baseline"


class DBCheckpointStore(CheckpointStore):
    def __init__(self, session: Session, namespace: str):
        if not namespace:
            raise ValueError("namespace is required")
        self._session = session
        self.namespace = namespace

    def load_checkpoint(self) -> Checkpoint | None:
        payload = self._load(CHECKPOINT_KIND)
        if not payload:
            return None
        return Checkpoint.from_payload(payload)

    def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        self._save(CHECKPOINT_KIND, checkpoint.to_payload())

    def load_baseline(self) -> dict[str, int]:
        payload = self._load(BASELINE_KIND)
        if not isinstance(payload, dict):
            return {}
        return {str(key): int(value or 0) for key, value in payload.items()}

    def save_baseline(self, usage: dict[str, int]) -> None:
        self._save(BASELINE_KIND, {str(key): int(value) for key, value in usage.items()})

    def _load(self, kind: str) -> Any:
        row = self._session.get(CollectorStateRow, _state_id(self.namespace, kind))
        return row.payload_json if row is not None else None

    def _save(self, kind: str, payload: Any) -> None:
        row_id = _state_id(self.namespace, kind)
        try:
            existing = self._session.get(CollectorStateRow, row_id)
            if existing is None:
                self._session.add(
                    CollectorStateRow(
                        id=row_id,
                        namespace=self.namespace,
                        kind=kind,
                        payload_json=payload,
                    )
                )
            else:
                existing.payload_json = payload
                existing.updated_at = datetime.now(timezone.utc)
                self._session.add(existing)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise


def _state_id(namespace: str, kind: str) -> str:
    return f"{namespace}:{kind}"
