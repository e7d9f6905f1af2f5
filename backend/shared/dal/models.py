"""Persistence models for the data access layer."""

from datetime import UTC, datetime
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

BOARD_STATEMENT_COUNT = 24
GRID_CELL_COUNT = 25


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _new_id() -> str:
    return str(uuid4())


class SessionStatus(StrEnum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class Session(BaseModel, frozen=True):
    """One round of the game, shared by every player that joined with its code."""

    id: str = Field(default_factory=_new_id)
    name: str = Field(min_length=1)
    board: tuple[str, ...]  # 24 statements; the centre free cell is never stored
    code: str
    status: SessionStatus = SessionStatus.WAITING
    winner_id: str | None = None  # informational only
    round: int = 0  # reset epoch
    revision: int = 0  # bumped by the store on every write
    created_at: datetime = Field(default_factory=_now)

    @field_validator("board")
    @classmethod
    def _validate_board(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(v) != BOARD_STATEMENT_COUNT:
            raise ValueError(f"board must hold exactly {BOARD_STATEMENT_COUNT} statements, got {len(v)}")
        return v


class Player(BaseModel, frozen=True):
    """One participant's marking state within a session."""

    id: str = Field(default_factory=_new_id)
    session_id: str
    name: str = Field(min_length=1)
    marked_cells: tuple[bool, ...] = (False,) * GRID_CELL_COUNT
    has_won: bool = False
    won_at: datetime | None = None
    is_host: bool = False
    join_order: int = 0
    round: int = 0
    revision: int = 0
    created_at: datetime = Field(default_factory=_now)

    @field_validator("marked_cells")
    @classmethod
    def _validate_marked_cells(cls, v: tuple[bool, ...]) -> tuple[bool, ...]:
        if len(v) != GRID_CELL_COUNT:
            raise ValueError(f"marked_cells must have {GRID_CELL_COUNT} entries, got {len(v)}")
        return v


class EntityKind(StrEnum):
    SESSION = "session"
    PLAYER = "player"


class ChangeKind(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel, frozen=True):
    """Row-level change delivered to every subscriber of a session."""

    entity: EntityKind
    kind: ChangeKind
    record: Session | Player
