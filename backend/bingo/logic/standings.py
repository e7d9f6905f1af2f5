"""Leaderboard ordering and winner listing."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

from bingo.logic.board import with_free_cell
from bingo.logic.win import closest_to_win

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shared.dal.models import Player

CLOSE_TO_WIN_THRESHOLD = 4


class Standing(BaseModel, frozen=True):
    player_id: str
    name: str
    is_host: bool
    has_won: bool
    progress: int
    close_to_win: bool


def standing_for(player: Player) -> Standing:
    progress = closest_to_win(with_free_cell(player.marked_cells))
    return Standing(
        player_id=player.id,
        name=player.name,
        is_host=player.is_host,
        has_won=player.has_won,
        progress=progress,
        close_to_win=not player.has_won and progress >= CLOSE_TO_WIN_THRESHOLD,
    )


def leaderboard(players: Iterable[Player]) -> list[Standing]:
    """Winners first, then by progress, then by join order."""
    ranked = sorted(
        players,
        key=lambda p: (not p.has_won, -closest_to_win(with_free_cell(p.marked_cells)), p.join_order),
    )
    return [standing_for(p) for p in ranked]


def winners(players: Iterable[Player]) -> list[Player]:
    """Players who completed a line, earliest first."""
    won = [p for p in players if p.has_won]
    return sorted(won, key=lambda p: (p.won_at is None, p.won_at, p.join_order))
