"""Read model handed to the presentation layer."""

from __future__ import annotations

from pydantic import BaseModel

from bingo.logic.board import layout_cells, with_free_cell
from bingo.logic.standings import Standing, leaderboard
from bingo.logic.win import evaluate
from shared.dal.models import Player, Session


class SessionView(BaseModel, frozen=True):
    session: Session
    cells: list[str]
    players: list[Player]
    me: Player | None
    marked_cells: tuple[bool, ...] | None  # current player's marks with the free cell overlaid
    winning_line: tuple[int, ...] | None
    leaderboard: list[Standing]

    @classmethod
    def build(cls, session: Session, players: list[Player], me: Player | None) -> SessionView:
        marks = with_free_cell(me.marked_cells) if me is not None else None
        return cls(
            session=session,
            cells=layout_cells(session.board),
            players=players,
            me=me,
            marked_cells=marks,
            winning_line=evaluate(marks).winning_line if marks is not None else None,
            leaderboard=leaderboard(players),
        )
