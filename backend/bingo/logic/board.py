"""Board layout, the implied free cell, and statement preparation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from bingo.logic.win import CELL_COUNT
from shared.dal.models import BOARD_STATEMENT_COUNT

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

FREE_CELL_INDEX = 12
FREE_CELL_LABEL = "FREE"
MAX_STATEMENT_LENGTH = 200
MAX_NAME_LENGTH = 100


class InvalidBoardError(ValueError):
    """Raised when game creation input cannot form a board."""


def with_free_cell(marked_cells: Sequence[bool]) -> tuple[bool, ...]:
    """Overlay the always-marked centre cell on stored marks.

    Storage never records the free cell; every reader goes through here.
    """
    if len(marked_cells) != CELL_COUNT:
        raise ValueError(f"Expected {CELL_COUNT} cells, got {len(marked_cells)}")
    return tuple(True if i == FREE_CELL_INDEX else bool(marked) for i, marked in enumerate(marked_cells))


def check_cell_index(index: int) -> None:
    if not 0 <= index < CELL_COUNT:
        raise ValueError(f"Cell index must be 0-{CELL_COUNT - 1}, got {index}")


def layout_cells(board: Sequence[str]) -> list[str]:
    """Expand 24 stored statements into the 25 grid labels, free cell in the centre."""
    if len(board) != BOARD_STATEMENT_COUNT:
        raise ValueError(f"Expected {BOARD_STATEMENT_COUNT} statements, got {len(board)}")
    return [*board[:FREE_CELL_INDEX], FREE_CELL_LABEL, *board[FREE_CELL_INDEX:]]


def parse_statements(text: str) -> list[str]:
    """Split pasted text into statements: one per line, blanks dropped, first 24 kept."""
    lines = (line.strip() for line in text.splitlines())
    return [line for line in lines if line][:BOARD_STATEMENT_COUNT]


def prepare_board(statements: Iterable[str]) -> tuple[str, ...]:
    """Trim statements, drop blank ones, and require exactly 24."""
    filled = [s.strip() for s in statements if s and s.strip()]
    if len(filled) != BOARD_STATEMENT_COUNT:
        raise InvalidBoardError(f"You need {BOARD_STATEMENT_COUNT} statements. You have {len(filled)}.")
    too_long = [i + 1 for i, s in enumerate(filled) if len(s) > MAX_STATEMENT_LENGTH]
    if too_long:
        raise InvalidBoardError(f"Statements longer than {MAX_STATEMENT_LENGTH} characters: {too_long}")
    return tuple(filled)


def prepare_name(name: str, *, what: str = "Game name") -> str:
    stripped = name.strip()
    if not stripped:
        raise InvalidBoardError(f"{what} is required")
    if len(stripped) > MAX_NAME_LENGTH:
        raise InvalidBoardError(f"{what} must be at most {MAX_NAME_LENGTH} characters")
    return stripped
