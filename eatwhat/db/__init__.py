"""Database package - models, session, and the history store."""
from eatwhat.db.base import Base
from eatwhat.db.models import HistoryEntry
from eatwhat.db.session import dispose_engine, get_engine, get_session_factory, init_models
from eatwhat.db.store import HistoryStore, SqlHistoryStore

__all__ = [
    "Base",
    "HistoryEntry",
    "HistoryStore",
    "SqlHistoryStore",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "init_models",
]
