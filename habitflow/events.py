"""Server-sent event fan-out of new registrations to connected admin clients."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Optional, Set

logger = logging.getLogger("habitflow.events")

USER_REGISTERED = "user-registered"
DEFAULT_KEEPALIVE_SECONDS = 15.0
DEFAULT_MAX_PENDING = 100

_CLOSE = object()
_ids = itertools.count(1)


class SubscriberState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


def format_event(event: str, data: Any) -> str:
    """Frame ``data`` as a named ``text/event-stream`` event."""

    payload = json.dumps(data, separators=(",", ":"))
    return f"event: {event}\ndata: {payload}\n\n"


def format_comment(text: str) -> str:
    return f": {text}\n\n"


@dataclass(eq=False)
class Subscriber:
    """A single live connection and the frames waiting to be written to it."""

    id: int = field(default_factory=lambda: next(_ids))
    state: SubscriberState = SubscriberState.CONNECTING
    queue: "asyncio.Queue[object]" = field(
        default_factory=lambda: asyncio.Queue(maxsize=DEFAULT_MAX_PENDING)
    )

    def push(self, frame: str) -> None:
        if self.state is not SubscriberState.CONNECTED:
            raise RuntimeError(f"Subscriber {self.id} is not connected")
        self.queue.put_nowait(frame)

    def close(self) -> None:
        if self.state is SubscriberState.CLOSED:
            return
        self.state = SubscriberState.CLOSED
        # Make room for the close marker; a closing subscriber loses its oldest frame.
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(_CLOSE)


class LiveUpdateChannel:
    """Tracks connected subscribers and broadcasts events to them.

    Delivery is best effort: subscribers only see events published while they
    are connected, and a failure to reach one subscriber never affects the
    others or the publisher.
    """

    def __init__(self, *, max_pending: int = DEFAULT_MAX_PENDING) -> None:
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self._max_pending = max_pending
        self._subscribers: Set[Subscriber] = set()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> Subscriber:
        """Register a new connection and queue the initial keep-alive comment."""

        subscriber = Subscriber(queue=asyncio.Queue(maxsize=self._max_pending))
        if self._closed:
            subscriber.close()
            return subscriber

        subscriber.state = SubscriberState.CONNECTED
        self._subscribers.add(subscriber)
        subscriber.push(format_comment("connected"))
        logger.info("Live-update subscriber %s connected (total=%s)", subscriber.id, len(self._subscribers))
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.discard(subscriber)
            logger.info(
                "Live-update subscriber %s disconnected (total=%s)",
                subscriber.id,
                len(self._subscribers),
            )
        subscriber.close()

    def publish(self, event: str, data: Any) -> int:
        """Push an event to every connected subscriber and return how many received it."""

        frame = format_event(event, data)
        delivered = 0
        for subscriber in list(self._subscribers):
            try:
                subscriber.push(frame)
            except asyncio.QueueFull:
                logger.warning(
                    "Disconnecting subscriber %s: %s frames pending without being read",
                    subscriber.id,
                    self._max_pending,
                )
                self.unsubscribe(subscriber)
                continue
            except Exception as exc:
                logger.warning("Dropping %s event for subscriber %s: %s", event, subscriber.id, exc)
                continue
            delivered += 1
        logger.debug("Published %s to %s subscriber(s)", event, delivered)
        return delivered

    def close(self) -> None:
        """Disconnect every subscriber; used when the service shuts down."""

        self._closed = True
        subscribers = list(self._subscribers)
        self._subscribers.clear()
        for subscriber in subscribers:
            subscriber.close()

    async def stream(
        self,
        *,
        keepalive: Optional[float] = DEFAULT_KEEPALIVE_SECONDS,
    ) -> AsyncIterator[str]:
        """Subscribe and yield frames until the channel closes or the consumer goes away.

        Subscribing happens on the first iteration, so a response that is never
        started leaves nothing behind in the subscriber set.
        """

        subscriber = self.subscribe()
        try:
            while True:
                try:
                    item = await asyncio.wait_for(subscriber.queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    yield format_comment("keep-alive")
                    continue
                if item is _CLOSE:
                    return
                yield str(item)
        finally:
            self.unsubscribe(subscriber)


__all__ = [
    "LiveUpdateChannel",
    "Subscriber",
    "SubscriberState",
    "USER_REGISTERED",
    "format_comment",
    "format_event",
]
