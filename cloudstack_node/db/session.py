from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy.engine import Engine, make_url
from sqlmodel import Session, SQLModel, create_engine

DEFAULT_STATE_DB_URL = "sqlite:///logs/cloudstack_state.db"


def database_url() -> str:
    return os.getenv("CLOUDSTACK_STATE_DB_URL", DEFAULT_STATE_DB_URL).strip() or DEFAULT_STATE_DB_URL


def create_state_engine(url: str | None = None) -> Engine:
    url = url or database_url()
    parsed = make_url(url)
    connect_args: dict[str, object] = {}
    if parsed.get_backend_name() == "sqlite":
        # Ticks run on a worker thread; the session is opened on the main one.
        connect_args["check_same_thread"] = False
        if parsed.database not in (None, "", ":memory:"):
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, connect_args=connect_args)
    # Importing the tables registers them on the metadata.
    from cloudstack_node.db import tables  # noqa: F401
    SQLModel.metadata.create_all(engine)
    return engine


def create_session(engine: Engine | None = None) -> Session:
    return Session(engine or create_state_engine())
