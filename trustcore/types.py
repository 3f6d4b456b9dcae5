from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Mapping, Optional

# Version of the persisted snapshot / event payload layout.
SCHEMA_VERSION = 1

SIGNAL_TYPES: tuple[str, ...] = ("rtp", "disclosure", "payout", "bonus", "compliance", "support")

# Declaration order matters: it is the tie-break order for rationales and the
# order of every category breakdown.
CATEGORIES: tuple[str, ...] = ("fairness", "payout_reliability", "bonus_terms", "compliance", "support")

CycleTrigger = Literal["scheduled", "manual"]
CycleStatus = Literal["running", "completed", "partial", "skipped", "aborted"]
RiskLevel = Literal["low", "watch", "elevated", "high", "critical"]


class Provenance(str, Enum):
    """Where a signal value came from."""

    LIVE = "live"
    CACHED = "cached"
    FALLBACK = "fallback"


class SourceMode(str, Enum):
    """How a source is served, resolved once at startup."""

    LIVE = "live"  # real network adapter
    FIXTURE = "fixture"  # curated offline data
    FALLBACK = "fallback"  # never called, neutral fallback only


@dataclass(frozen=True)
class SourceBinding:
    source_id: str
    signal_type: str

    @property
    def key(self) -> str:
        return f"{self.source_id}:{self.signal_type}"


@dataclass(frozen=True)
class TrackedEntity:
    entity_id: str
    display_name: str
    bindings: tuple[SourceBinding, ...] = ()


@dataclass(frozen=True)
class SignalResult:
    source_id: str
    entity_id: str
    signal_type: str
    payload: Mapping[str, Any]
    confidence: float  # 0-1
    fetched_at: datetime
    provenance: Provenance = Provenance.LIVE

    @property
    def binding_key(self) -> str:
        return f"{self.source_id}:{self.signal_type}"


@dataclass(frozen=True)
class Metric:
    name: str
    category: str
    value: float  # 0-100
    confidence: float  # 0-1
    contributing_signals: tuple[str, ...]
    computed_at: datetime
    neutral: bool = False  # True when the neutral default was used


@dataclass(frozen=True)
class CategoryScore:
    category: str
    score: float  # 0-100
    confidence: float  # 0-1
    weight: float


@dataclass(frozen=True)
class RationaleEntry:
    metric: str
    category: str
    value: float
    magnitude: float  # overall points lost against the baseline
    reason: str


@dataclass(frozen=True)
class ProvenanceSummary:
    live: int = 0
    cached: int = 0
    fallback: int = 0
    missing: int = 0
    low_confidence: bool = False
    degraded_sources: tuple[str, ...] = ()
    source_modes: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CompositeScore:
    entity_id: str
    cycle_id: int
    overall: float  # 0-100
    category_breakdown: tuple[CategoryScore, ...]
    confidence: float
    rationale: tuple[RationaleEntry, ...]
    provenance_summary: ProvenanceSummary
    metrics: tuple[Metric, ...] = ()
    grade: str = "F"


@dataclass(frozen=True)
class Snapshot:
    entity_id: str
    cycle_id: int
    composite: CompositeScore
    stored_at: datetime
    schema_version: int = SCHEMA_VERSION


@dataclass(frozen=True)
class CycleRecord:
    cycle_id: int
    trigger: CycleTrigger
    status: CycleStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    committed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    fetch_attempts: int = 0  # adapter calls made, retries included
    spent: float = 0.0  # summed per-call cost of those calls
