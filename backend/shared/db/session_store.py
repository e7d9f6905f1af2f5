"""SQLite-backed session store with in-process change notification."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.changes import ChangeFeed
from shared.dal.errors import (
    ConflictError,
    NotFoundError,
    SessionClosedError,
    StaleWriteError,
    StoreError,
    WriteFailedError,
)
from shared.dal.models import GRID_CELL_COUNT, ChangeEvent, ChangeKind, EntityKind, Player, Session, SessionStatus
from shared.dal.session_store import SessionStore

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shared.dal.changes import Subscription
    from shared.db.connection import Database

logger = structlog.get_logger()

# Fields a client may change after creation. board, code, is_host and the
# owning session id are fixed for the lifetime of a row.
_SESSION_UPDATABLE = frozenset({"name", "status", "winner_id", "round"})
_PLAYER_UPDATABLE = frozenset({"name", "marked_cells", "has_won", "won_at"})


class SqliteSessionStore(SessionStore):
    """SQLite implementation of SessionStore.

    Rows are stored as JSON snapshots next to the indexed columns used for
    lookups. Writes are serialized under an asyncio lock and published to
    the change feed in commit order.
    """

    def __init__(self, db: Database, feed: ChangeFeed | None = None) -> None:
        self._db = db
        self._feed = feed or ChangeFeed()
        self._lock = asyncio.Lock()

    @property
    def feed(self) -> ChangeFeed:
        return self._feed

    async def create_session(self, name: str, board: Sequence[str], code: str) -> Session:
        """Insert a session in waiting status. Raises ConflictError when the code is taken."""
        session = Session(name=name, board=tuple(board), code=code)
        async with self._lock:
            try:
                self._db.connection.execute(
                    "INSERT INTO sessions (id, code, status, created_at, data) VALUES (?, ?, ?, ?, ?)",
                    (
                        session.id,
                        session.code,
                        session.status.value,
                        session.created_at.isoformat(),
                        session.model_dump_json(),
                    ),
                )
                self._db.connection.commit()
            except sqlite3.IntegrityError as exc:
                self._db.connection.rollback()
                if "sessions.code" in str(exc).lower():
                    raise ConflictError(f"Join code '{code}' already in use") from exc
                raise WriteFailedError(str(exc)) from exc  # pragma: no cover
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise WriteFailedError(f"Failed to create session: {exc}") from exc
            logger.info("session created", session_id=session.id, code=session.code)
            self._publish(session.id, EntityKind.SESSION, ChangeKind.INSERT, session)
        return session

    async def create_player(self, session_id: str, name: str, *, is_host: bool = False) -> Player:
        """Insert a player at the end of the session's join order.

        Raises SessionClosedError once the session has left waiting status.
        """
        async with self._lock:
            session = self._fetch_session(session_id)
            if session.status != SessionStatus.WAITING:
                raise SessionClosedError(f"Session '{session_id}' is {session.status} and not accepting players")
            try:
                row = self._db.connection.execute(
                    "SELECT COALESCE(MAX(join_order), -1) + 1 FROM players WHERE session_id = ?",
                    (session_id,),
                ).fetchone()
                player = Player(
                    session_id=session_id,
                    name=name,
                    is_host=is_host,
                    join_order=row[0],
                    round=session.round,
                )
                self._db.connection.execute(
                    "INSERT INTO players (id, session_id, join_order, data) VALUES (?, ?, ?, ?)",
                    (player.id, player.session_id, player.join_order, player.model_dump_json()),
                )
                self._db.connection.commit()
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise WriteFailedError(f"Failed to create player: {exc}") from exc
            logger.info("player created", session_id=session_id, player_id=player.id, is_host=is_host)
            self._publish(session_id, EntityKind.PLAYER, ChangeKind.INSERT, player)
        return player

    async def get_session_by_code(self, code: str) -> Session:
        row = self._query_one("SELECT data FROM sessions WHERE code = ?", (code,))
        if row is None:
            raise NotFoundError(f"No session with code '{code}'")
        return Session.model_validate(json.loads(row[0]))

    async def get_session(self, session_id: str) -> Session:
        return self._fetch_session(session_id)

    async def list_players(self, session_id: str) -> list[Player]:
        """Return the session's players in creation order."""
        try:
            rows = self._db.connection.execute(
                "SELECT data FROM players WHERE session_id = ? ORDER BY join_order",
                (session_id,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to list players: {exc}") from exc
        return [Player.model_validate(json.loads(row[0])) for row in rows]

    async def update_session(self, session_id: str, **changes: Any) -> Session:  # noqa: ANN401
        _check_fields(changes, _SESSION_UPDATABLE, "session")
        async with self._lock:
            current = self._fetch_session(session_id)
            updated = Session.model_validate(
                {**current.model_dump(), **changes, "revision": current.revision + 1},
            )
            try:
                self._db.connection.execute(
                    "UPDATE sessions SET status = ?, data = ? WHERE id = ?",
                    (updated.status.value, updated.model_dump_json(), session_id),
                )
                self._db.connection.commit()
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                raise WriteFailedError(f"Failed to update session: {exc}") from exc
            logger.debug("session updated", session_id=session_id, fields=sorted(changes))
            self._publish(session_id, EntityKind.SESSION, ChangeKind.UPDATE, updated)
        return updated

    async def update_player(
        self,
        player_id: str,
        *,
        expected_round: int | None = None,
        **changes: Any,  # noqa: ANN401
    ) -> Player:
        """Apply a partial update to one player row.

        When expected_round is given and the stored row belongs to another
        round (the session was reset meanwhile), the write is rejected with
        StaleWriteError.
        """
        _check_fields(changes, _PLAYER_UPDATABLE, "player")
        async with self._lock:
            current = self._fetch_player(player_id)
            if expected_round is not None and current.round != expected_round:
                logger.info(
                    "stale player write rejected",
                    player_id=player_id,
                    expected_round=expected_round,
                    stored_round=current.round,
                )
                raise StaleWriteError(
                    f"Player '{player_id}' is in round {current.round}, write targeted round {expected_round}",
                )
            updated = Player.model_validate(
                {**current.model_dump(), **changes, "revision": current.revision + 1},
            )
            self._write_players([updated])
            logger.debug("player updated", player_id=player_id, fields=sorted(changes))
            self._publish(updated.session_id, EntityKind.PLAYER, ChangeKind.UPDATE, updated)
        return updated

    async def reset_players(self, session_id: str, round: int) -> list[Player]:  # noqa: A002
        """Clear every player of a session in a single transaction and stamp them with the new round."""
        async with self._lock:
            self._fetch_session(session_id)
            current = await self.list_players(session_id)
            cleared = [
                player.model_copy(
                    update={
                        "marked_cells": (False,) * GRID_CELL_COUNT,
                        "has_won": False,
                        "won_at": None,
                        "round": round,
                        "revision": player.revision + 1,
                    },
                )
                for player in current
            ]
            self._write_players(cleared)
            logger.info("players reset", session_id=session_id, round=round, count=len(cleared))
            for player in cleared:
                self._publish(session_id, EntityKind.PLAYER, ChangeKind.UPDATE, player)
        return cleared

    def subscribe(self, session_id: str) -> Subscription:
        return self._feed.subscribe(session_id)

    def _write_players(self, players: list[Player]) -> None:
        try:
            for player in players:
                self._db.connection.execute(
                    "UPDATE players SET data = ? WHERE id = ?",
                    (player.model_dump_json(), player.id),
                )
            self._db.connection.commit()
        except sqlite3.Error as exc:
            self._db.connection.rollback()
            raise WriteFailedError(f"Failed to update players: {exc}") from exc

    def _fetch_session(self, session_id: str) -> Session:
        row = self._query_one("SELECT data FROM sessions WHERE id = ?", (session_id,))
        if row is None:
            raise NotFoundError(f"Session '{session_id}' not found")
        return Session.model_validate(json.loads(row[0]))

    def _fetch_player(self, player_id: str) -> Player:
        row = self._query_one("SELECT data FROM players WHERE id = ?", (player_id,))
        if row is None:
            raise NotFoundError(f"Player '{player_id}' not found")
        return Player.model_validate(json.loads(row[0]))

    def _query_one(self, sql: str, params: tuple[str, ...]) -> tuple[str] | None:
        try:
            return self._db.connection.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Query failed: {exc}") from exc

    def _publish(self, session_id: str, entity: EntityKind, kind: ChangeKind, record: Session | Player) -> None:
        self._feed.publish(session_id, ChangeEvent(entity=entity, kind=kind, record=record))


def _check_fields(changes: dict[str, Any], allowed: frozenset[str], entity: str) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Cannot update {entity} fields: {', '.join(sorted(unknown))}")
