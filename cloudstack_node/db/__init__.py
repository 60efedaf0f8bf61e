from .session import create_session, create_state_engine, database_url
from .state_store import DBCheckpointStore

__all__ = ["DBCheckpointStore", "create_session", "create_state_engine", "database_url"]
