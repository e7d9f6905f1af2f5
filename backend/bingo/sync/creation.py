"""Creating a session together with its host player."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from bingo.logic.board import prepare_board, prepare_name
from bingo.logic.codes import generate_join_code
from shared.dal.errors import ConflictError, WriteFailedError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from bingo.sync.identity import IdentityStore
    from shared.dal.models import Player, Session
    from shared.dal.session_store import SessionStore

logger = structlog.get_logger()

DEFAULT_HOST_NAME = "Host"
DEFAULT_MAX_ATTEMPTS = 5


@dataclass(frozen=True, slots=True)
class CreatedGame:
    session: Session
    host: Player


async def create_game(  # noqa: PLR0913
    store: SessionStore,
    name: str,
    statements: Iterable[str],
    *,
    host_name: str = DEFAULT_HOST_NAME,
    identity: IdentityStore | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    code_factory: Callable[[], str] = generate_join_code,
) -> CreatedGame:
    """Validate input, create the session and its host, and remember the host as this client's player.

    A join code collision is retried with a fresh code; after max_attempts
    collisions the creation fails with WriteFailedError. Invalid input
    raises InvalidBoardError before anything is written.
    """
    game_name = prepare_name(name)
    board = prepare_board(statements)
    host = prepare_name(host_name, what="Host name")

    session: Session | None = None
    for attempt in range(1, max_attempts + 1):
        code = code_factory()
        try:
            session = await store.create_session(game_name, board, code)
            break
        except ConflictError:
            logger.info("join code collision, regenerating", code=code, attempt=attempt)
    if session is None:
        raise WriteFailedError(f"Could not allocate a unique join code after {max_attempts} attempts")

    host_player = await store.create_player(session.id, host, is_host=True)
    if identity is not None:
        identity.remember(session.code, host_player.id)
    logger.info("game created", session_id=session.id, code=session.code, host_player_id=host_player.id)
    return CreatedGame(session=session, host=host_player)
