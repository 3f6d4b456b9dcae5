"""Shared test fixtures for pytest.

Provides signal factories, a scriptable source adapter and a ready-wired
cycle pipeline over the in-memory store.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

import pytest

from trustcore.config import CollectorConfig, SourceConfig
from trustcore.events.bus import EventBus
from trustcore.pipeline.cycle import CycleRunner
from trustcore.rollup.service import TrustRollup
from trustcore.signals.cache import SignalCache
from trustcore.signals.collector import SignalCollector
from trustcore.sources.base import SourceAdapter
from trustcore.storage.memory import InMemorySnapshotStore
from trustcore.types import (
    Provenance,
    SignalResult,
    SourceBinding,
    SourceMode,
    TrackedEntity,
)

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

# Payloads for a platform with no weaknesses at all.
CLEAN_PAYLOADS: dict[str, dict[str, Any]] = {
    "rtp": {"claimed_rtp": 96.5, "verified_rtp": 96.4},
    "disclosure": {"rtp_published": True, "audit_report_present": True},
    "payout": {"average_hours": 2, "complaints": 0},
    "bonus": {"wagering_requirement": 0, "restrictive": False},
    "compliance": {"licensed": True, "jurisdiction": "Malta", "kyc_required": True, "reputation": "good"},
    "support": {"sentiment": 0.9, "sample_size": 500, "response_hours": 1},
}


class ScriptedAdapter(SourceAdapter):
    """Adapter whose answers are scripted per (entity_id, signal_type).

    Each script entry is a list of outcomes consumed in order (the last one
    repeats). An outcome is a payload dict or an exception instance to raise.
    """

    def __init__(
        self,
        source_id: str,
        signal_types: tuple[str, ...],
        script: Optional[Mapping[tuple[str, str], list[Any]]] = None,
        *,
        default: Any = None,
        confidence: float = 0.9,
        delay: float = 0.0,
        **config_overrides: Any,
    ) -> None:
        super().__init__(
            SourceConfig(
                source_id=source_id,
                signal_types=signal_types,
                mode=SourceMode.FIXTURE,
                **config_overrides,
            )
        )
        self._script = {k: list(v) for k, v in (script or {}).items()}
        self._default = default
        self._confidence = confidence
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def fetch(self, entity_id: str, signal_type: str, timeout: float) -> SignalResult:
        self.calls.append((entity_id, signal_type))
        if self.delay:
            await asyncio.sleep(self.delay)

        outcomes = self._script.get((entity_id, signal_type))
        if outcomes:
            outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        elif self._default is not None:
            outcome = self._default
        else:
            outcome = CLEAN_PAYLOADS[signal_type]

        if isinstance(outcome, BaseException):
            raise outcome
        return self._make_result(entity_id, signal_type, outcome, self._confidence)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_signal() -> Callable[..., SignalResult]:
    """Factory for SignalResult objects with sensible defaults."""

    def _make(
        signal_type: str,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        entity_id: str = "stake.com",
        source_id: Optional[str] = None,
        confidence: float = 0.9,
        provenance: Provenance = Provenance.LIVE,
        fetched_at: datetime = FIXED_NOW,
    ) -> SignalResult:
        return SignalResult(
            source_id=source_id or f"{signal_type}_src",
            entity_id=entity_id,
            signal_type=signal_type,
            payload=dict(CLEAN_PAYLOADS[signal_type] if payload is None else payload),
            confidence=confidence,
            fetched_at=fetched_at,
            provenance=provenance,
        )

    return _make


@pytest.fixture
def clean_signals(make_signal) -> list[SignalResult]:
    """One live, high-confidence signal of every type for a clean platform."""
    return [make_signal(signal_type) for signal_type in CLEAN_PAYLOADS]


def entity_for(entity_id: str, adapters: Mapping[str, SourceAdapter]) -> TrackedEntity:
    bindings = tuple(
        SourceBinding(source_id=adapter.source_id, signal_type=signal_type)
        for adapter in adapters.values()
        for signal_type in adapter.signal_types
    )
    return TrackedEntity(entity_id=entity_id, display_name=entity_id, bindings=bindings)


@dataclass
class Pipeline:
    runner: CycleRunner
    store: InMemorySnapshotStore
    bus: EventBus
    rollup: TrustRollup
    collector: SignalCollector
    cache: SignalCache
    adapters: dict[str, SourceAdapter]


@pytest.fixture
def build_pipeline() -> Callable[..., Pipeline]:
    """Wire collector, store, bus, rollup and runner around the given adapters."""

    def _build(
        adapters: Mapping[str, SourceAdapter],
        entity_ids: tuple[str, ...] = ("stake.com",),
        *,
        store: Optional[InMemorySnapshotStore] = None,
        cache: Optional[SignalCache] = None,
        collector_config: Optional[CollectorConfig] = None,
        on_degraded: Optional[Callable[..., None]] = None,
    ) -> Pipeline:
        adapters = dict(adapters)
        store = store or InMemorySnapshotStore()
        cache = cache if cache is not None else SignalCache()
        bus = EventBus()
        rollup = TrustRollup(store, bus)
        collector = SignalCollector(
            adapters,
            cache,
            collector_config or CollectorConfig(base_retry_delay=0.0, retry_jitter=False),
            on_degraded=on_degraded,
        )
        runner = CycleRunner(
            entities=tuple(entity_for(e, adapters) for e in entity_ids),
            collector=collector,
            store=store,
            cycles=store,
            rollup=rollup,
            bus=bus,
        )
        return Pipeline(runner, store, bus, rollup, collector, cache, adapters)

    return _build


@pytest.fixture
def scripted_adapter() -> type[ScriptedAdapter]:
    return ScriptedAdapter


@pytest.fixture
def make_entity() -> Callable[[str, Mapping[str, SourceAdapter]], TrackedEntity]:
    return entity_for
