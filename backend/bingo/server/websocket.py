"""WebSocket handler: one SessionSynchronizer per connected client."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError
from starlette.websockets import WebSocket, WebSocketDisconnect

from bingo.logic.codes import is_valid_join_code, normalize_join_code
from bingo.server.messages import (
    EndMessage,
    JoinMessage,
    MarkMessage,
    PingMessage,
    ResetMessage,
    StartMessage,
    error_message,
    intent_result_message,
    joined_message,
    notice_message,
    parse_client_message,
    state_message,
)
from bingo.sync.events import SyncEvent, SyncEventKind
from bingo.sync.identity import MemoryIdentityStore
from bingo.sync.synchronizer import SessionSynchronizer
from shared.dal.errors import NotFoundError, StoreError

if TYPE_CHECKING:
    from bingo.server.settings import BingoServerSettings
    from shared.dal.session_store import SessionStore

logger = structlog.get_logger()

_FAILURE_MESSAGES = {
    "join": "Failed to join game",
    "mark": "Failed to mark square",
    "start": "Failed to start game",
    "end": "Failed to end game",
    "reset": "Failed to reset game",
}


class _Outbox:
    """Single queue of outgoing messages so only the sender task writes to the socket.

    State changes are coalesced: a burst of changes yields one snapshot,
    rendered when it is actually sent.
    """

    _STATE = object()

    def __init__(self, sync: SessionSynchronizer) -> None:
        self._sync = sync
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._state_pending = False

    def put(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(message)

    def on_sync_event(self, event: SyncEvent) -> None:
        if event.kind == SyncEventKind.STATE:
            if not self._state_pending:
                self._state_pending = True
                self._queue.put_nowait(self._STATE)
            return
        self._queue.put_nowait(notice_message(event))

    async def send_forever(self, websocket: WebSocket) -> None:
        while True:
            item = await self._queue.get()
            if item is self._STATE:
                self._state_pending = False
                payload = state_message(self._sync.view())
            else:
                payload = item
            with contextlib.suppress(ConnectionError, RuntimeError, WebSocketDisconnect):
                await websocket.send_json(payload)


async def session_websocket(websocket: WebSocket) -> None:
    """Follow one session for one client and apply the client's intents."""
    settings: BingoServerSettings = websocket.app.state.settings
    store: SessionStore = websocket.app.state.store

    if settings.ws_allowed_origin and websocket.headers.get("origin", "") != settings.ws_allowed_origin:
        await websocket.close(code=4003, reason="forbidden_origin")
        return

    code = normalize_join_code(websocket.path_params["code"])
    if not is_valid_join_code(code):
        await websocket.close(code=4000, reason="invalid_code")
        return

    await websocket.accept()

    # Store and synchronizer log lines for this connection carry the join code.
    structlog.contextvars.bind_contextvars(code=code)
    try:
        await _serve(websocket, store, settings, code)
    finally:
        structlog.contextvars.clear_contextvars()


async def _serve(websocket: WebSocket, store: SessionStore, settings: BingoServerSettings, code: str) -> None:
    identity = MemoryIdentityStore()
    player_id = websocket.query_params.get("player_id")
    if player_id:
        identity.remember(code, player_id)

    async with SessionSynchronizer(store, identity=identity, min_players=settings.min_players) as sync:
        try:
            view = await sync.load(code)
        except NotFoundError:
            logger.info("connection rejected", reason="session_not_found")
            await websocket.send_json(error_message("Game not found"))
            await websocket.close(code=4004, reason="session_not_found")
            return
        except StoreError:
            logger.exception("failed to load session")
            await websocket.send_json(error_message("Failed to load game"))
            await websocket.close(code=1011, reason="load_failed")
            return

        await websocket.send_json(state_message(view))
        outbox = _Outbox(sync)
        sync.add_listener(outbox.on_sync_event)
        sender = asyncio.create_task(outbox.send_forever(websocket))
        logger.info("client connected", player_id=view.me.id if view.me else None)

        try:
            await _message_loop(websocket, sync, outbox)
        except WebSocketDisconnect:
            pass
        except Exception:  # pragma: no cover
            logger.exception("unexpected error in session websocket")
        finally:
            sync.remove_listener(outbox.on_sync_event)
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender
            logger.info("client disconnected")


async def _message_loop(websocket: WebSocket, sync: SessionSynchronizer, outbox: _Outbox) -> None:
    while True:
        raw = await websocket.receive_text()
        try:
            message = parse_client_message(raw)
        except (ValueError, ValidationError) as e:
            outbox.put(error_message(str(e)))
            continue

        if isinstance(message, PingMessage):
            outbox.put({"type": "pong"})
            continue

        intent = message.type
        try:
            await _dispatch(message, sync, outbox)
        except StoreError:
            outbox.put(error_message(_FAILURE_MESSAGES[intent]))
        except ValueError as e:
            outbox.put(error_message(str(e)))


async def _dispatch(
    message: JoinMessage | MarkMessage | StartMessage | EndMessage | ResetMessage,
    sync: SessionSynchronizer,
    outbox: _Outbox,
) -> None:
    if isinstance(message, JoinMessage):
        player = await sync.join(message.name)
        if player is None:
            outbox.put(error_message("This game is no longer accepting players"))
        else:
            outbox.put(joined_message(player))
    elif isinstance(message, MarkMessage):
        outbox.put(intent_result_message("mark", await sync.mark_cell(message.index)))
    elif isinstance(message, StartMessage):
        outbox.put(intent_result_message("start", await sync.start()))
    elif isinstance(message, EndMessage):
        outbox.put(intent_result_message("end", await sync.end()))
    elif isinstance(message, ResetMessage):
        outbox.put(intent_result_message("reset", await sync.reset()))
