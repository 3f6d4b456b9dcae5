"""Trust event bus."""

from trustcore.events.bus import SUBSCRIBER_QUEUE_SIZE, EventBus, Subscription
from trustcore.events.types import (
    CYCLE_COMPLETED,
    SOURCE_DEGRADED,
    TRUST_UPDATED,
    CycleCompletedEvent,
    SourceDegradedEvent,
    TrustEvent,
    TrustUpdatedEvent,
)

__all__ = [
    "CYCLE_COMPLETED",
    "SOURCE_DEGRADED",
    "SUBSCRIBER_QUEUE_SIZE",
    "TRUST_UPDATED",
    "CycleCompletedEvent",
    "EventBus",
    "SourceDegradedEvent",
    "Subscription",
    "TrustEvent",
    "TrustUpdatedEvent",
]
