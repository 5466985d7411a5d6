"""In-process change feed for session and device row changes."""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from multicam_sessions.domain.events import SessionEvent

_logger = logging.getLogger(__name__)


class ChangePublisher(Protocol):
    """Sink for change events emitted after successful store writes."""

    def publish(self, event: SessionEvent) -> None:
        """Publish an event to every subscriber of its session."""


@dataclass(eq=False)
class Subscription:
    """A subscriber's buffered view of one session's change stream."""

    session_id: UUID
    queue: asyncio.Queue
    resync_required: bool = False

    async def next_event(self, timeout: float | None = None) -> SessionEvent | None:
        """Return the next event, or None when the timeout elapses."""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except TimeoutError:
            return None

    def take_resync(self) -> bool:
        """Return and clear the overflow flag."""
        flagged = self.resync_required
        self.resync_required = False
        return flagged

    def drain(self) -> list[SessionEvent]:
        """Return all buffered events without waiting."""
        events: list[SessionEvent] = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events

    def __aiter__(self) -> AsyncIterator[SessionEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[SessionEvent]:
        while True:
            yield await self.queue.get()


@dataclass
class InMemoryChangeFeed(ChangePublisher):
    """Fans events out to per-session subscriber queues."""

    max_queue_size: int = 256
    _subscribers: dict[UUID, list[Subscription]] = field(default_factory=dict)

    def publish(self, event: SessionEvent) -> None:
        """Deliver an event to every subscriber, dropping the oldest on overflow."""
        for subscription in list(self._subscribers.get(event.session_id, [])):
            if subscription.queue.full():
                subscription.queue.get_nowait()
                subscription.resync_required = True
                _logger.warning(
                    "Change feed subscriber overflowed",
                    extra={"session_id": str(event.session_id)},
                )
            subscription.queue.put_nowait(event)

    @contextmanager
    def subscribe(self, session_id: UUID) -> Iterator[Subscription]:
        """Register a subscriber for the lifetime of the context."""
        subscription = Subscription(
            session_id=session_id,
            queue=asyncio.Queue(maxsize=self.max_queue_size),
        )
        self._subscribers.setdefault(session_id, []).append(subscription)
        try:
            yield subscription
        finally:
            subscribers = self._subscribers.get(session_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(session_id, None)

    def subscriber_count(self, session_id: UUID) -> int:
        return len(self._subscribers.get(session_id, []))

    def close(self) -> None:
        """Forget all subscribers; used on application shutdown."""
        self._subscribers.clear()
