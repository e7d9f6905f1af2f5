"""Data access layer: store interface, records, errors and change fan-out."""

from shared.dal.changes import ChangeFeed, Subscription
from shared.dal.errors import (
    ConflictError,
    NotFoundError,
    SessionClosedError,
    StaleWriteError,
    StoreError,
    WriteFailedError,
)
from shared.dal.models import ChangeEvent, ChangeKind, EntityKind, Player, Session, SessionStatus
from shared.dal.session_store import SessionStore

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "ChangeKind",
    "ConflictError",
    "EntityKind",
    "NotFoundError",
    "SessionClosedError",
    "Player",
    "Session",
    "SessionStatus",
    "SessionStore",
    "StaleWriteError",
    "StoreError",
    "Subscription",
    "WriteFailedError",
]
