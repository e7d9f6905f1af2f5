"""Session lifecycle: which host intent moves a session from which status to which."""

from enum import StrEnum

from shared.dal.models import SessionStatus


class LifecycleIntent(StrEnum):
    START = "start"
    END = "end"
    RESET = "reset"


# waiting -> waiting on reset is the idempotent re-clear; every other pair is absent on purpose.
TRANSITIONS: dict[tuple[SessionStatus, LifecycleIntent], SessionStatus] = {
    (SessionStatus.WAITING, LifecycleIntent.START): SessionStatus.PLAYING,
    (SessionStatus.PLAYING, LifecycleIntent.END): SessionStatus.FINISHED,
    (SessionStatus.FINISHED, LifecycleIntent.RESET): SessionStatus.WAITING,
    (SessionStatus.WAITING, LifecycleIntent.RESET): SessionStatus.WAITING,
}


def next_status(status: SessionStatus, intent: LifecycleIntent) -> SessionStatus | None:
    """Return the status the intent leads to, or None when it is not allowed from here."""
    return TRANSITIONS.get((status, intent))


def accepts_players(status: SessionStatus) -> bool:
    return status == SessionStatus.WAITING


def accepts_marks(status: SessionStatus) -> bool:
    return status == SessionStatus.PLAYING
