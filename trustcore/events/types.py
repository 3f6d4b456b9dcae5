"""The closed set of events published on the trust event bus."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from trustcore.storage.serialization import composite_to_dict
from trustcore.types import SCHEMA_VERSION, CompositeScore, CycleStatus, CycleTrigger, RiskLevel

TRUST_UPDATED = "entity.trust.updated"
CYCLE_COMPLETED = "cycle.completed"
SOURCE_DEGRADED = "source.degraded"

EVENT_TYPES: tuple[str, ...] = (TRUST_UPDATED, CYCLE_COMPLETED, SOURCE_DEGRADED)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TrustUpdatedEvent:
    """A new composite score was committed for an entity."""

    composite: CompositeScore
    previous_overall: Optional[float] = None
    volatility: float = 0.0  # scaled 24h std dev of score deltas, 0-1
    risk_level: RiskLevel = "low"
    published_at: datetime = field(default_factory=_now)
    event_type: str = TRUST_UPDATED

    @property
    def entity_id(self) -> str:
        return self.composite.entity_id

    @property
    def cycle_id(self) -> int:
        return self.composite.cycle_id

    def to_dict(self) -> dict[str, Any]:
        delta = None
        if self.previous_overall is not None:
            delta = round(self.composite.overall - self.previous_overall, 2)
        composite = composite_to_dict(self.composite)
        return {
            "type": self.event_type,
            "schema_version": SCHEMA_VERSION,
            "entity_id": self.entity_id,
            "cycle_id": self.cycle_id,
            "overall": composite["overall"],
            "grade": composite["grade"],
            "confidence": composite["confidence"],
            "category_breakdown": composite["category_breakdown"],
            "provenance_summary": composite["provenance_summary"],
            "rationale": composite["rationale"],
            "previous_overall": self.previous_overall,
            "delta": delta,
            "volatility": self.volatility,
            "risk_level": self.risk_level,
            "published_at": self.published_at.isoformat(),
        }


@dataclass(frozen=True)
class CycleCompletedEvent:
    cycle_id: int
    trigger: CycleTrigger
    status: CycleStatus
    committed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    published_at: datetime = field(default_factory=_now)
    event_type: str = CYCLE_COMPLETED

    @property
    def entity_id(self) -> Optional[str]:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "cycle_id": self.cycle_id,
            "trigger": self.trigger,
            "status": self.status,
            "committed": list(self.committed),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
            "published_at": self.published_at.isoformat(),
        }


@dataclass(frozen=True)
class SourceDegradedEvent:
    source_id: str
    reason: str
    error_type: str
    published_at: datetime = field(default_factory=_now)
    event_type: str = SOURCE_DEGRADED

    @property
    def entity_id(self) -> Optional[str]:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "source_id": self.source_id,
            "reason": self.reason,
            "error_type": self.error_type,
            "published_at": self.published_at.isoformat(),
        }


TrustEvent = Union[TrustUpdatedEvent, CycleCompletedEvent, SourceDegradedEvent]
