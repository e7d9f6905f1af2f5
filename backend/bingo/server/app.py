from __future__ import annotations

import contextlib
import json
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from bingo.logic.board import InvalidBoardError, layout_cells, parse_statements
from bingo.logic.codes import lobby_path, normalize_join_code, play_path
from bingo.logic.standings import leaderboard
from bingo.server.messages import CreateSessionRequest
from bingo.server.settings import BingoServerSettings
from bingo.server.websocket import session_websocket
from bingo.sync.creation import create_game
from shared.dal.errors import NotFoundError, StoreError
from shared.db import Database, SqliteSessionStore
from shared.logging import setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

    from shared.dal.session_store import SessionStore

logger = structlog.get_logger()

_MAX_REQUEST_BODY_SIZE = 32768


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def create_session(request: Request) -> JSONResponse:
    store: SessionStore = request.app.state.store
    settings: BingoServerSettings = request.app.state.settings

    raw_body = await request.body()
    if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
        return JSONResponse({"error": "Request body too large"}, status_code=413)
    try:
        body = json.loads(raw_body)
        req = CreateSessionRequest(**body)
    except (ValueError, TypeError, ValidationError) as e:
        return JSONResponse({"error": str(e)}, status_code=422)

    statements = req.statements if req.statements is not None else parse_statements(req.statements_text or "")
    try:
        created = await create_game(
            store,
            req.name,
            statements,
            host_name=req.host_name or settings.host_name,
            max_attempts=settings.max_create_attempts,
        )
    except InvalidBoardError as e:
        return JSONResponse({"error": str(e)}, status_code=422)
    except StoreError:
        logger.exception("failed to create game")
        return JSONResponse({"error": "Failed to create game. Please try again."}, status_code=503)

    code = created.session.code
    return JSONResponse(
        {
            "session_id": created.session.id,
            "code": code,
            "host_player_id": created.host.id,
            "join_url": lobby_path(code),
            "play_url": play_path(code),
        },
        status_code=201,
    )


async def read_session(request: Request) -> JSONResponse:
    store: SessionStore = request.app.state.store
    code = normalize_join_code(request.path_params["code"])
    try:
        session = await store.get_session_by_code(code)
        players = await store.list_players(session.id)
    except NotFoundError:
        return JSONResponse({"error": "Game not found"}, status_code=404)
    except StoreError:
        logger.exception("failed to load game", code=code)
        return JSONResponse({"error": "Failed to load game"}, status_code=503)

    return JSONResponse(
        {
            "session": session.model_dump(mode="json"),
            "cells": layout_cells(session.board),
            "players": [p.model_dump(mode="json") for p in players],
            "leaderboard": [s.model_dump(mode="json") for s in leaderboard(players)],
        },
    )


def create_app(
    settings: BingoServerSettings | None = None,
    store: SessionStore | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = BingoServerSettings()

    # When the app opens its own database, it owns the connection lifecycle.
    owned_db: Database | None = None
    if store is None:
        db = Database(settings.database_path)
        db.connect()
        owned_db = db
        store = SqliteSessionStore(db)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/sessions", create_session, methods=["POST"]),
        Route("/sessions/{code}", read_session, methods=["GET"]),
        WebSocketRoute("/ws/{code}", session_websocket),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        yield
        if owned_db is not None:
            owned_db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.store = store

    logger.info("bingo server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for uvicorn --factory bingo.server.app:get_app."""
    settings = BingoServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
