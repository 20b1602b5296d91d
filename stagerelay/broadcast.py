"""In-process broadcast channel for display clients.

Events are fanned out to every subscriber's bounded queue with
``put_nowait``. A subscriber whose queue is full misses that event: delivery
is at-most-once and best-effort, and a slow client never stalls a connector.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)

BIBLE_SLIDE_EVENT = "bible-slide"
MUSIC_SLIDE_EVENT = "music-slide"
STATUS_EVENT = "notification.status"


@dataclass(frozen=True, slots=True)
class BroadcastEvent:
    name: str
    payload: Any


class BroadcastChannel(Protocol):
    """Anything that can publish a named event to display clients."""

    def emit(self, event: str, payload: Any) -> None: ...


class Subscriber:
    """Handle returned by :meth:`Broadcaster.subscribe`."""

    def __init__(self, broadcaster: "Broadcaster", maxsize: int) -> None:
        self._broadcaster = broadcaster
        self.queue: asyncio.Queue[BroadcastEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    async def get(self) -> BroadcastEvent:
        return await self.queue.get()

    def unsubscribe(self) -> None:
        self._broadcaster._remove(self)


class Broadcaster:
    """Fan-out :class:`BroadcastChannel` with per-subscriber queues."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: list[Subscriber] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscriber:
        subscriber = Subscriber(self, self._queue_size)
        self._subscribers.append(subscriber)
        logger.info("Display client subscribed (%d total)", len(self._subscribers))
        return subscriber

    def _remove(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)
            logger.info("Display client unsubscribed (%d total)", len(self._subscribers))

    def emit(self, event: str, payload: Any) -> None:
        message = BroadcastEvent(event, payload)
        for subscriber in list(self._subscribers):
            try:
                subscriber.queue.put_nowait(message)
            except asyncio.QueueFull:
                subscriber.dropped += 1
                logger.warning("Dropping %s event for a slow display client", event)


__all__ = [
    "BIBLE_SLIDE_EVENT",
    "BroadcastChannel",
    "BroadcastEvent",
    "Broadcaster",
    "MUSIC_SLIDE_EVENT",
    "STATUS_EVENT",
    "Subscriber",
]
