"""Typed client-to-server messages for the session WebSocket, and server message builders."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from bingo.logic.board import MAX_NAME_LENGTH
from bingo.logic.win import CELL_COUNT

if TYPE_CHECKING:
    from bingo.sync.events import IntentOutcome, SyncEvent
    from bingo.sync.view import SessionView
    from shared.dal.models import Player

_MAX_WS_MESSAGE_SIZE = 4096


class JoinMessage(BaseModel):
    type: Literal["join"]
    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)


class MarkMessage(BaseModel):
    type: Literal["mark"]
    index: int = Field(ge=0, lt=CELL_COUNT)


class StartMessage(BaseModel):
    type: Literal["start"]


class EndMessage(BaseModel):
    type: Literal["end"]


class ResetMessage(BaseModel):
    type: Literal["reset"]


class PingMessage(BaseModel):
    type: Literal["ping"]


ClientMessage = Annotated[
    JoinMessage | MarkMessage | StartMessage | EndMessage | ResetMessage | PingMessage,
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(
    raw: str,
) -> JoinMessage | MarkMessage | StartMessage | EndMessage | ResetMessage | PingMessage:
    """Parse and validate a raw JSON string into a typed client message."""
    byte_len = len(raw.encode("utf-8"))
    if byte_len > _MAX_WS_MESSAGE_SIZE:
        raise ValueError(f"Message too large ({byte_len} bytes, max {_MAX_WS_MESSAGE_SIZE})")
    data = json.loads(raw)
    return _client_message_adapter.validate_python(data)


class CreateSessionRequest(BaseModel):
    """Body of POST /sessions. Statements come either as a list or as pasted text."""

    name: str
    statements: list[str] | None = None
    statements_text: str | None = None
    host_name: str | None = None

    @model_validator(mode="after")
    def _require_statements(self) -> CreateSessionRequest:
        if self.statements is None and self.statements_text is None:
            raise ValueError("Provide statements or statements_text")
        return self


def state_message(view: SessionView) -> dict[str, Any]:
    return {"type": "state", **view.model_dump(mode="json")}


def joined_message(player: Player) -> dict[str, Any]:
    return {"type": "joined", "player": player.model_dump(mode="json")}


def notice_message(event: SyncEvent) -> dict[str, Any]:
    return {
        "type": "notice",
        "kind": event.kind.value,
        "player_id": event.player_id,
        "player_name": event.player_name,
        "status": event.status.value if event.status is not None else None,
    }


def intent_result_message(intent: str, outcome: IntentOutcome) -> dict[str, Any]:
    return {"type": "intent_result", "intent": intent, "outcome": outcome.value}


def error_message(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}
