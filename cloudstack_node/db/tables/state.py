"""Durable collector state: one row per (namespace, kind)."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CollectorStateRow(SQLModel, table=True):
    __tablename__ = "collector_state"

    id: str = Field(primary_key=True)

    namespace: str = Field(index=True)
    kind: str = Field(index=True)

    payload_json: Any = Field(default=None, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=utc_now, index=True)

    __table_args__ = (
        Index("uq_collector_state_scope", "namespace", "kind", unique=True),
    )
