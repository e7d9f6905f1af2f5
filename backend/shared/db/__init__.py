"""SQLite database layer: connection management and the session store."""

from shared.db.connection import Database
from shared.db.session_store import SqliteSessionStore

__all__ = [
    "Database",
    "SqliteSessionStore",
]
