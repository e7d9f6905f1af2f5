"""In-process fan-out of row changes to session subscribers."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from shared.dal.models import ChangeEvent

logger = structlog.get_logger()

_CLOSED = object()


class Subscription:
    """Live stream of change events for one session.

    Iterate with ``async for``. Iteration ends once ``close()`` is called.
    Usable as an async context manager, which closes it on exit.
    """

    def __init__(self, feed: ChangeFeed, session_id: str) -> None:
        self.session_id = session_id
        self._feed = feed
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed.remove(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        self.close()


class ChangeFeed:
    """Track subscriptions per session id and deliver every published change to each.

    Queues are unbounded: a committed change reaches every subscriber that
    was open when it was published.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)

    def subscribe(self, session_id: str) -> Subscription:
        subscription = Subscription(self, session_id)
        self._subscribers[session_id].add(subscription)
        logger.debug("subscription opened", session_id=session_id, subscribers=len(self._subscribers[session_id]))
        return subscription

    def remove(self, subscription: Subscription) -> None:
        subs = self._subscribers.get(subscription.session_id)
        if not subs:
            return
        subs.discard(subscription)
        if not subs:
            self._subscribers.pop(subscription.session_id, None)
        logger.debug("subscription closed", session_id=subscription.session_id)

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    def publish(self, session_id: str, event: ChangeEvent) -> None:
        for subscription in list(self._subscribers.get(session_id, ())):
            subscription.deliver(event)
