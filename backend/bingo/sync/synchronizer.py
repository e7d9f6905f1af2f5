"""Client-side live view of one session.

A SessionSynchronizer loads a session by join code, keeps its session and
player records current from the store's change subscription, and turns
user intents (join, mark, start, end, reset) into store writes.

Local state only ever moves to what the store confirmed: either the record
returned by a successful write or a change delivered by the subscription.
Each row carries a revision, so a change that arrives twice (for example
the echo of this client's own write) or out of order is dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TypeVar

import structlog

from bingo.logic.board import FREE_CELL_INDEX, check_cell_index, prepare_name, with_free_cell
from bingo.logic.codes import normalize_join_code
from bingo.logic.lifecycle import LifecycleIntent, accepts_marks, accepts_players, next_status
from bingo.logic.standings import winners
from bingo.logic.win import evaluate
from bingo.sync.events import IntentOutcome, SyncEvent, SyncEventKind
from bingo.sync.identity import MemoryIdentityStore
from bingo.sync.view import SessionView
from shared.dal.errors import SessionClosedError, StoreError
from shared.dal.models import ChangeKind, EntityKind, SessionStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from bingo.sync.identity import IdentityStore
    from shared.dal.changes import Subscription
    from shared.dal.models import ChangeEvent, Player, Session
    from shared.dal.session_store import SessionStore

    Listener = Callable[[SyncEvent], None]

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_WAIT_TIMEOUT = 5.0


class SessionSynchronizer:
    """Own one session's live state on behalf of one client.

    Use as an async context manager so the subscription is released on
    every exit path::

        async with SessionSynchronizer(store, identity=identity) as sync:
            await sync.load("ABCD23")
            await sync.join("Alice")
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        identity: IdentityStore | None = None,
        min_players: int = 1,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._identity: IdentityStore = identity if identity is not None else MemoryIdentityStore()
        self._min_players = min_players
        self._clock = clock or (lambda: datetime.now(tz=UTC))

        self._session: Session | None = None
        self._players: dict[str, Player] = {}
        self._my_player_id: str | None = None

        self._subscription: Subscription | None = None
        self._apply_task: asyncio.Task[None] | None = None
        self._intent_lock = asyncio.Lock()
        self._state_changed = asyncio.Event()
        self._listeners: list[Listener] = []
        self._closed = False
        self._log = logger

    # -- presentation outputs ------------------------------------------------

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def players(self) -> list[Player]:
        """Players in creation order."""
        return sorted(self._players.values(), key=lambda p: p.join_order)

    @property
    def current_player(self) -> Player | None:
        if self._my_player_id is None:
            return None
        return self._players.get(self._my_player_id)

    @property
    def is_host(self) -> bool:
        player = self.current_player
        return player is not None and player.is_host

    @property
    def winning_line(self) -> tuple[int, ...] | None:
        player = self.current_player
        if player is None:
            return None
        return evaluate(with_free_cell(player.marked_cells)).winning_line

    @property
    def closed(self) -> bool:
        return self._closed

    def view(self) -> SessionView:
        session = self._require_loaded()
        return SessionView.build(session, self.players, self.current_player)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    # -- lifecycle of the synchronizer itself ---------------------------------

    async def load(self, code: str) -> SessionView:
        """Resolve a session by join code, snapshot it, and start following its changes.

        Raises NotFoundError when no session has this code.
        """
        if self._closed:
            raise RuntimeError("Synchronizer is closed")
        if self._session is not None:
            raise RuntimeError("A session is already loaded")

        found = await self._store.get_session_by_code(normalize_join_code(code))
        # Subscribe before taking the snapshot so nothing committed in between is missed;
        # anything seen twice is dropped by revision.
        subscription = self._store.subscribe(found.id)
        try:
            session = await self._store.get_session(found.id)
            players = await self._store.list_players(found.id)
        except BaseException:
            subscription.close()
            raise

        self._subscription = subscription
        self._session = session
        self._players = {p.id: p for p in players}
        self._log = logger.bind(session_id=session.id, code=session.code)
        self._resolve_identity()
        self._apply_task = asyncio.create_task(self._apply_changes(subscription), name=f"sync-{session.code}")

        self._log.info("session loaded", players=len(players), player_id=self._my_player_id)
        self._emit([SyncEvent(SyncEventKind.STATE, status=session.status)])
        return self.view()

    async def close(self) -> None:
        """Release the change subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
        if self._apply_task is not None:
            self._apply_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._apply_task
            self._apply_task = None
        self._log.debug("synchronizer closed")

    async def __aenter__(self) -> SessionSynchronizer:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def wait_for(
        self,
        predicate: Callable[[SessionSynchronizer], bool],
        timeout: float = DEFAULT_WAIT_TIMEOUT,  # noqa: ASYNC109
    ) -> None:
        """Wait until predicate holds on this synchronizer's state. Raises TimeoutError."""
        async with asyncio.timeout(timeout):
            while not predicate(self):
                await self._state_changed.wait()

    # -- intents ---------------------------------------------------------------

    async def join(self, name: str) -> Player | None:
        """Create a non-host player for this client and remember it.

        Returns None when the session no longer accepts players. When this
        client already has a player in the session, that player is returned.
        """
        async with self._intent_lock:
            session = self._require_loaded()
            existing = self.current_player
            if existing is not None:
                return existing
            if not accepts_players(session.status):
                self._log.info("join refused", status=session.status)
                return None

            player_name = prepare_name(name, what="Player name")
            try:
                player = await self._commit("join", self._store.create_player(session.id, player_name))
            except SessionClosedError:
                # The session started before this client saw the change.
                return None
            self._my_player_id = player.id
            self._identity.remember(session.code, player.id)
            self._apply_player(ChangeKind.INSERT, player)
            self._log.info("joined session", player_id=player.id)
            return player

    async def mark_cell(self, index: int) -> IntentOutcome:
        """Mark one cell on this client's board, recording a win if it completes a line."""
        check_cell_index(index)
        async with self._intent_lock:
            session = self._require_loaded()
            if index == FREE_CELL_INDEX:
                return IntentOutcome.IGNORED
            player = self.current_player
            if player is None:
                return IntentOutcome.DENIED
            if not accepts_marks(session.status):
                return IntentOutcome.INVALID_STATE
            if player.marked_cells[index]:
                return IntentOutcome.IGNORED

            cells = list(player.marked_cells)
            cells[index] = True
            changes: dict[str, object] = {"marked_cells": tuple(cells)}
            result = evaluate(with_free_cell(cells))
            completes_line = result.won and not player.has_won
            if completes_line:
                changes["has_won"] = True
                changes["won_at"] = self._clock()

            updated = await self._commit(
                "mark",
                self._store.update_player(player.id, expected_round=player.round, **changes),
            )
            self._apply_player(ChangeKind.UPDATE, updated)
            if completes_line:
                self._log.info("line completed", player_id=player.id, line=result.winning_line)
            return IntentOutcome.APPLIED

    async def start(self) -> IntentOutcome:
        return await self._lifecycle(LifecycleIntent.START)

    async def end(self) -> IntentOutcome:
        return await self._lifecycle(LifecycleIntent.END)

    async def reset(self) -> IntentOutcome:
        return await self._lifecycle(LifecycleIntent.RESET)

    async def _lifecycle(self, intent: LifecycleIntent) -> IntentOutcome:
        async with self._intent_lock:
            session = self._require_loaded()
            if not self.is_host:
                self._log.info("host intent denied", intent=intent, player_id=self._my_player_id)
                return IntentOutcome.DENIED
            if intent == LifecycleIntent.END and session.status == SessionStatus.FINISHED:
                return IntentOutcome.IGNORED
            target = next_status(session.status, intent)
            if target is None:
                self._log.info("host intent in wrong state", intent=intent, status=session.status)
                return IntentOutcome.INVALID_STATE
            if intent == LifecycleIntent.START and len(self._players) < self._min_players:
                self._log.info("not enough players to start", players=len(self._players), required=self._min_players)
                return IntentOutcome.INVALID_STATE

            if intent == LifecycleIntent.RESET:
                await self._reset(session)
            else:
                changes: dict[str, object] = {"status": target}
                if intent == LifecycleIntent.END:
                    ranked = winners(self._players.values())
                    changes["winner_id"] = ranked[0].id if ranked else None
                updated = await self._commit(intent.value, self._store.update_session(session.id, **changes))
                self._apply_session(updated)

            self._log.info("session transitioned", intent=intent, status=target)
            return IntentOutcome.APPLIED

    async def _reset(self, session: Session) -> None:
        """Clear every board, then return the session to waiting under a new round.

        Player rows are stamped with the new round first, so a mark sent by
        another client against the old round is rejected by the store.
        """
        new_round = session.round + 1
        cleared = await self._commit("reset", self._store.reset_players(session.id, new_round))
        for player in cleared:
            self._apply_player(ChangeKind.UPDATE, player)
        updated = await self._commit(
            "reset",
            self._store.update_session(
                session.id,
                status=SessionStatus.WAITING,
                winner_id=None,
                round=new_round,
            ),
        )
        self._apply_session(updated)

    async def _commit(self, intent: str, write: Awaitable[T]) -> T:
        try:
            return await write
        except StoreError as exc:
            self._log.warning("store write failed", intent=intent, error=str(exc), error_type=type(exc).__name__)
            raise

    # -- applying changes ------------------------------------------------------

    async def _apply_changes(self, subscription: Subscription) -> None:
        async for event in subscription:
            self._apply(event)

    def _apply(self, event: ChangeEvent) -> None:
        if event.entity == EntityKind.SESSION:
            self._apply_session(event.record)  # type: ignore[arg-type]
        else:
            self._apply_player(event.kind, event.record)  # type: ignore[arg-type]

    def _apply_session(self, session: Session) -> None:
        current = self._session
        if current is None or session.id != current.id or session.revision <= current.revision:
            return
        self._session = session
        events = [SyncEvent(SyncEventKind.STATE, status=session.status)]
        if session.status != current.status:
            self._log.info("status changed", previous=current.status, status=session.status)
            events.append(SyncEvent(SyncEventKind.STATUS_CHANGED, status=session.status))
        self._emit(events)

    def _apply_player(self, kind: ChangeKind, player: Player) -> None:
        if self._session is None or player.session_id != self._session.id:
            return
        known = self._players.get(player.id)

        if kind == ChangeKind.DELETE:
            if known is None:
                return
            del self._players[player.id]
            if player.id == self._my_player_id:
                self._my_player_id = None
            self._emit([SyncEvent(SyncEventKind.STATE)])
            return

        if known is not None and player.revision <= known.revision:
            return
        self._players[player.id] = player
        if self._my_player_id is None and self._identity.get(self._session.code) == player.id:
            self._my_player_id = player.id

        events = [SyncEvent(SyncEventKind.STATE)]
        if known is None and player.id != self._my_player_id:
            events.append(SyncEvent(SyncEventKind.PLAYER_JOINED, player_id=player.id, player_name=player.name))
        if known is not None and player.has_won and not known.has_won:
            events.append(SyncEvent(SyncEventKind.PLAYER_WON, player_id=player.id, player_name=player.name))
        self._emit(events)

    def _emit(self, events: list[SyncEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    self._log.exception("sync listener failed", kind=event.kind)
        self._state_changed.set()
        self._state_changed = asyncio.Event()

    def _resolve_identity(self) -> None:
        session = self._require_loaded()
        remembered = self._identity.get(session.code)
        if remembered is None:
            return
        if remembered in self._players:
            self._my_player_id = remembered
        else:
            self._log.warning("remembered player not in session", player_id=remembered)

    def _require_loaded(self) -> Session:
        if self._closed:
            raise RuntimeError("Synchronizer is closed")
        if self._session is None:
            raise RuntimeError("No session loaded")
        return self._session
