"""Abstract interface for session and player persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shared.dal.changes import Subscription
    from shared.dal.models import Player, Session


class SessionStore(ABC):
    """Durable record of sessions and players with change notification.

    Every committed write is published to the subscribers of the affected
    session, including the client that issued it. Players can only be
    created while their session is waiting; otherwise create_player raises
    SessionClosedError.
    """

    @abstractmethod
    async def create_session(self, name: str, board: Sequence[str], code: str) -> Session: ...

    @abstractmethod
    async def create_player(self, session_id: str, name: str, *, is_host: bool = False) -> Player: ...

    @abstractmethod
    async def get_session_by_code(self, code: str) -> Session: ...

    @abstractmethod
    async def get_session(self, session_id: str) -> Session: ...

    @abstractmethod
    async def list_players(self, session_id: str) -> list[Player]: ...

    @abstractmethod
    async def update_session(self, session_id: str, **changes: Any) -> Session: ...  # noqa: ANN401

    @abstractmethod
    async def update_player(
        self,
        player_id: str,
        *,
        expected_round: int | None = None,
        **changes: Any,  # noqa: ANN401
    ) -> Player: ...

    @abstractmethod
    async def reset_players(self, session_id: str, round: int) -> list[Player]: ...  # noqa: A002

    @abstractmethod
    def subscribe(self, session_id: str) -> Subscription: ...
