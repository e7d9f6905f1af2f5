"""Line detection over the 5x5 marking grid.

The grid is a flat, row-major sequence of 25 booleans. There are 12
candidate lines and they are always checked in the same order: rows top to
bottom, columns left to right, then the two diagonals. When several lines
complete at once, the first one in that order is reported.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from collections.abc import Sequence

GRID_SIZE = 5
CELL_COUNT = GRID_SIZE * GRID_SIZE

ROWS: tuple[tuple[int, ...], ...] = tuple(
    tuple(row * GRID_SIZE + col for col in range(GRID_SIZE)) for row in range(GRID_SIZE)
)
COLUMNS: tuple[tuple[int, ...], ...] = tuple(
    tuple(row * GRID_SIZE + col for row in range(GRID_SIZE)) for col in range(GRID_SIZE)
)
MAIN_DIAGONAL = (0, 6, 12, 18, 24)
ANTI_DIAGONAL = (4, 8, 12, 16, 20)

LINES: tuple[tuple[int, ...], ...] = (*ROWS, *COLUMNS, MAIN_DIAGONAL, ANTI_DIAGONAL)


class WinResult(NamedTuple):
    won: bool
    winning_line: tuple[int, ...] | None


NO_WIN = WinResult(won=False, winning_line=None)


def _check_length(marked_cells: Sequence[bool]) -> None:
    if len(marked_cells) != CELL_COUNT:
        raise ValueError(f"Expected {CELL_COUNT} cells, got {len(marked_cells)}")


def evaluate(marked_cells: Sequence[bool]) -> WinResult:
    """Return the first fully marked line, if any."""
    _check_length(marked_cells)
    for line in LINES:
        if all(marked_cells[i] for i in line):
            return WinResult(won=True, winning_line=line)
    return NO_WIN


def closest_to_win(marked_cells: Sequence[bool]) -> int:
    """Return the highest number of marked cells on any single line (0-5).

    Used for progress display and leaderboard ordering only.
    """
    _check_length(marked_cells)
    return max(sum(1 for i in line if marked_cells[i]) for line in LINES)
