"""In-process event bus with bounded per-subscriber queues.

Publishing never blocks: each subscriber owns a bounded queue and a full
queue drops the event with a warning. Trust updates for one entity reach a
subscriber in non-decreasing cycle order; anything older than what the
subscriber has already seen for that entity is discarded at delivery.

Usage:
    bus = EventBus()
    subscription = bus.subscribe(entity_id="stake.com")
    try:
        event = await subscription.get(timeout=30.0)
    finally:
        subscription.close()
"""

from __future__ import annotations

import asyncio
import logging
from threading import Lock
from typing import Iterable, Optional

from trustcore.events.types import EVENT_TYPES, TRUST_UPDATED, TrustEvent, TrustUpdatedEvent

logger = logging.getLogger(__name__)

# Per-subscriber queue size. A subscriber that falls this far behind starts
# losing events rather than slowing down publishers.
SUBSCRIBER_QUEUE_SIZE = 100


class Subscription:
    """One consumer's view of the bus."""

    def __init__(
        self,
        bus: "EventBus",
        *,
        entity_id: Optional[str] = None,
        event_types: Optional[Iterable[str]] = None,
        maxsize: int = SUBSCRIBER_QUEUE_SIZE,
    ) -> None:
        self._bus = bus
        self.entity_id = entity_id
        self.event_types = frozenset(event_types) if event_types is not None else frozenset(EVENT_TYPES)
        self.queue: asyncio.Queue[TrustEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self._last_cycle: dict[str, int] = {}
        self.closed = False

    def matches(self, event: TrustEvent) -> bool:
        if event.event_type not in self.event_types:
            return False
        if self.entity_id is None:
            return True
        # Entity-scoped subscribers only see that entity's updates.
        return event.entity_id == self.entity_id

    def offer(self, event: TrustEvent) -> bool:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Queue full for subscriber, dropping {event.event_type} event")
            return False
        return True

    def mark_seen(self, entity_id: str, cycle_id: int) -> None:
        """Treat updates up to ``cycle_id`` as already delivered for ``entity_id``."""
        last = self._last_cycle.get(entity_id)
        if last is None or cycle_id > last:
            self._last_cycle[entity_id] = cycle_id

    def _is_stale(self, event: TrustEvent) -> bool:
        if not isinstance(event, TrustUpdatedEvent):
            return False
        last = self._last_cycle.get(event.entity_id)
        if last is not None and event.cycle_id <= last:
            return True
        self._last_cycle[event.entity_id] = event.cycle_id
        return False

    async def get(self, timeout: Optional[float] = None) -> TrustEvent:
        """Next event in order.

        Raises:
            asyncio.TimeoutError: nothing arrived within ``timeout``
        """
        while True:
            if timeout is None:
                event = await self.queue.get()
            else:
                event = await asyncio.wait_for(self.queue.get(), timeout=timeout)
            if self._is_stale(event):
                logger.debug(f"Discarding out-of-order update for {event.entity_id}")
                continue
            return event

    def get_nowait(self) -> Optional[TrustEvent]:
        while True:
            try:
                event = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                return None
            if not self._is_stale(event):
                return event

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._bus.unsubscribe(self)


class EventBus:
    """Fan-out of trust events to subscriber queues."""

    def __init__(self, *, queue_size: int = SUBSCRIBER_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: list[Subscription] = []
        self._lock = Lock()
        self.published = 0

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(
        self,
        *,
        entity_id: Optional[str] = None,
        event_types: Optional[Iterable[str]] = None,
    ) -> Subscription:
        if event_types is None and entity_id is not None:
            event_types = (TRUST_UPDATED,)
        subscription = Subscription(self, entity_id=entity_id, event_types=event_types, maxsize=self._queue_size)
        with self._lock:
            self._subscribers.append(subscription)
            count = len(self._subscribers)
        logger.info(f"New event subscriber for {entity_id or 'all entities'} (total: {count})")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)
                remaining = len(self._subscribers)
                logger.info(f"Event subscriber disconnected (remaining: {remaining})")

    def publish(self, event: TrustEvent) -> int:
        """Deliver to every matching subscriber. Returns how many accepted it."""
        with self._lock:
            subscribers = list(self._subscribers)
            self.published += 1

        delivered = 0
        for subscription in subscribers:
            if subscription.matches(event) and subscription.offer(event):
                delivered += 1
        logger.debug(f"Published {event.event_type} to {delivered}/{len(subscribers)} subscribers")
        return delivered
