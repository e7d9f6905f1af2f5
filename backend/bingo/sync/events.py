"""Outcomes of client intents and notifications emitted while applying changes."""

from dataclasses import dataclass
from enum import StrEnum

from shared.dal.models import SessionStatus


class IntentOutcome(StrEnum):
    APPLIED = "applied"
    IGNORED = "ignored"  # valid no-op: free cell, already marked, already finished
    DENIED = "denied"  # no resolved player, or not the host
    INVALID_STATE = "invalid_state"  # wrong lifecycle state or too few players


class SyncEventKind(StrEnum):
    STATE = "state"
    PLAYER_JOINED = "player_joined"
    PLAYER_WON = "player_won"
    STATUS_CHANGED = "status_changed"


@dataclass(frozen=True, slots=True)
class SyncEvent:
    kind: SyncEventKind
    player_id: str | None = None
    player_name: str | None = None
    status: SessionStatus | None = None
