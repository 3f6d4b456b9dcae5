"""Concurrent signal collection with timeouts, retries and graceful degradation.

One ``CollectionContext`` lives for one cycle and owns:
- a semaphore capping in-flight fetches across all entities
- a single-flight table so each (entity, source, signal type) is fetched at
  most once per cycle, however many callers ask for it

Per binding the collector tries the adapter (unless the source is forced to
fallback), retrying transient failures with exponential backoff and jitter.
When the adapter cannot deliver, the freshest cached result within TTL is
used, otherwise a neutral fallback marker is returned. One entity's failures
never affect another entity.

A source is flagged degraded the first time it rejects credentials or its
adapter misbehaves. Errors scoped to one binding (unknown entity, bad path)
are recorded on that binding and never flag the source. Recovery is decided
once per cycle, in ``close_context``: a flagged source that served at least
one fetch and failed none during the cycle is cleared.

Usage:
    collector = SignalCollector(adapters, cache, CollectorConfig())
    context = collector.new_context(cycle_id=7)
    signals = await collector.collect_entity(entity, context)
    collector.close_context(context)
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, Optional

from trustcore.config import CollectorConfig
from trustcore.errors import (
    ExtractionFailure,
    SourceAuthError,
    SourceError,
    SourceFaultError,
    SourceTimeoutError,
)
from trustcore.signals.cache import SignalCache, SingleFlight, cache_key
from trustcore.sources.base import SourceAdapter
from trustcore.types import (
    Provenance,
    ProvenanceSummary,
    SignalResult,
    SourceBinding,
    TrackedEntity,
)

logger = logging.getLogger(__name__)

# Documented neutral marker carried by fallback results. Metrics treat any
# fallback result as "no evidence" regardless of payload.
FALLBACK_PAYLOAD: Mapping[str, object] = {}


@dataclass(frozen=True)
class DegradedSource:
    source_id: str
    reason: str
    error_type: str
    since: datetime


@dataclass
class CollectionContext:
    cycle_id: int
    semaphore: asyncio.Semaphore
    flights: SingleFlight = field(default_factory=SingleFlight)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    fetch_attempts: int = 0
    spent: float = 0.0
    # Sources flagged when the cycle started; provenance reports this set so
    # it does not depend on the order entities are collected in.
    degraded_at_start: frozenset[str] = frozenset()
    served: set[str] = field(default_factory=set)
    failing: set[str] = field(default_factory=set)
    binding_errors: dict[tuple[str, str], SourceError] = field(default_factory=dict)


def flags_source(error: SourceError) -> bool:
    """True for errors that say the whole source is unusable, not one binding."""
    return isinstance(error, (SourceAuthError, SourceFaultError))


@dataclass(frozen=True)
class EntitySignals:
    """Everything collected for one entity in one cycle."""

    entity: TrackedEntity
    results: tuple[SignalResult, ...]
    missing: tuple[str, ...] = ()  # binding keys that produced nothing usable
    errors: Mapping[str, str] = field(default_factory=dict)  # binding key -> permanent error type
    failed_sources: tuple[str, ...] = ()  # sources that failed source-wide for this entity

    @property
    def has_evidence(self) -> bool:
        """True when at least one signal is real (live or cached) evidence."""
        return any(r.provenance is not Provenance.FALLBACK for r in self.results)

    def provenance_summary(
        self,
        *,
        degraded_sources: Iterable[str] = (),
        source_modes: Mapping[str, str] | None = None,
    ) -> ProvenanceSummary:
        counts = {p: 0 for p in Provenance}
        for result in self.results:
            counts[result.provenance] += 1
        bound = {b.source_id for b in self.entity.bindings}
        degraded = set(degraded_sources) | set(self.failed_sources)
        return ProvenanceSummary(
            live=counts[Provenance.LIVE],
            cached=counts[Provenance.CACHED],
            fallback=counts[Provenance.FALLBACK],
            missing=len(self.missing),
            degraded_sources=tuple(sorted(s for s in degraded if s in bound)),
            source_modes={k: v for k, v in sorted((source_modes or {}).items()) if k in bound},
        )


def calculate_backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: bool = True) -> float:
    """Exponential backoff: base * 2^attempt, capped, with 0-50% jitter either way."""
    delay = min(base_delay * (2**attempt), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


class SignalCollector:
    """Fetches signals for tracked entities through their source adapters."""

    def __init__(
        self,
        adapters: Mapping[str, SourceAdapter],
        cache: SignalCache,
        config: CollectorConfig | None = None,
        *,
        on_degraded: Optional[Callable[[DegradedSource], None]] = None,
    ) -> None:
        self._adapters = dict(adapters)
        self._cache = cache
        self._config = config or CollectorConfig()
        self._on_degraded = on_degraded
        self._degraded: dict[str, DegradedSource] = {}

    @property
    def adapters(self) -> Mapping[str, SourceAdapter]:
        return self._adapters

    @property
    def degraded_sources(self) -> dict[str, DegradedSource]:
        return dict(self._degraded)

    def source_modes(self) -> dict[str, str]:
        return {source_id: adapter.mode.value for source_id, adapter in self._adapters.items()}

    def new_context(self, cycle_id: int) -> CollectionContext:
        return CollectionContext(
            cycle_id=cycle_id,
            semaphore=asyncio.Semaphore(self._config.max_concurrency),
            degraded_at_start=frozenset(self._degraded),
        )

    def close_context(self, context: CollectionContext) -> None:
        """End a cycle: cancel leftover fetches and clear sources that recovered."""
        context.flights.cancel_all()
        for source_id in list(self._degraded):
            if source_id in context.served and source_id not in context.failing:
                self._mark_recovered(source_id)

    async def collect_entity(self, entity: TrackedEntity, context: CollectionContext) -> EntitySignals:
        """Collect every bound signal for one entity concurrently."""
        outcomes = await asyncio.gather(
            *(self.fetch_signal(entity.entity_id, binding, context) for binding in entity.bindings)
        )

        results: list[SignalResult] = []
        missing: list[str] = []
        errors: dict[str, str] = {}
        failed_sources: set[str] = set()
        for binding, outcome in zip(entity.bindings, outcomes):
            if outcome is None:
                missing.append(binding.key)
            else:
                results.append(outcome)
            error = context.binding_errors.get((entity.entity_id, binding.key))
            if error is not None:
                errors[binding.key] = type(error).__name__
                if flags_source(error):
                    failed_sources.add(binding.source_id)

        return EntitySignals(
            entity=entity,
            results=tuple(results),
            missing=tuple(missing),
            errors=errors,
            failed_sources=tuple(sorted(failed_sources)),
        )

    async def collect(self, entities: Iterable[TrackedEntity], cycle_id: int) -> dict[str, EntitySignals]:
        """Collect all entities in one fresh context."""
        context = self.new_context(cycle_id)
        try:
            entity_list = list(entities)
            collected = await asyncio.gather(*(self.collect_entity(e, context) for e in entity_list))
        finally:
            self.close_context(context)
        return {signals.entity.entity_id: signals for signals in collected}

    async def fetch_signal(
        self,
        entity_id: str,
        binding: SourceBinding,
        context: CollectionContext,
    ) -> Optional[SignalResult]:
        """Fetch one binding, deduplicated within the cycle.

        Returns None only when the binding produced nothing usable at all
        (no adapter, or the upstream body could not be extracted).
        """
        key = cache_key(entity_id, binding.source_id, binding.signal_type)
        return await context.flights.do(key, lambda: self._fetch_uncached(entity_id, binding, context))

    async def _fetch_uncached(
        self,
        entity_id: str,
        binding: SourceBinding,
        context: CollectionContext,
    ) -> Optional[SignalResult]:
        adapter = self._adapters.get(binding.source_id)
        if adapter is None:
            logger.warning(f"No adapter registered for source {binding.source_id}, skipping {binding.key}")
            return None

        if adapter.force_fallback:
            return self._cache_or_fallback(entity_id, binding, adapter)

        timeout = adapter.config.timeout_seconds
        max_retries = max(0, adapter.config.max_retries)
        attempt = 0

        while True:
            try:
                async with context.semaphore:
                    context.fetch_attempts += 1
                    context.spent += adapter.cost_per_call
                    result = await asyncio.wait_for(adapter.fetch(entity_id, binding.signal_type, timeout), timeout)
            except asyncio.TimeoutError:
                error: SourceError = SourceTimeoutError(
                    f"{binding.key} timed out after {timeout:.1f}s",
                    source_id=binding.source_id,
                )
            except SourceError as exc:
                error = exc
            except ExtractionFailure as exc:
                logger.warning(f"Unusable response from {binding.key} for {entity_id}: {exc}")
                return None
            except Exception as exc:
                # Adapter bug: contain it to this binding and stop calling the source.
                logger.exception(f"Unexpected error from {binding.key} for {entity_id}")
                error = SourceFaultError(f"unexpected adapter error: {exc}", source_id=binding.source_id)
            else:
                context.served.add(binding.source_id)
                if adapter.supports_caching:
                    self._cache.put(result)
                return result

            if not error.is_transient:
                logger.error(f"Permanent error from {binding.key} for {entity_id}: {error}. Not retrying.")
                context.binding_errors[(entity_id, binding.key)] = error
                if flags_source(error):
                    context.failing.add(binding.source_id)
                    self._mark_degraded(binding.source_id, error)
                break

            if attempt >= max_retries:
                logger.error(f"Max retries ({max_retries}) exceeded for {binding.key} ({entity_id}): {error}")
                break

            delay = calculate_backoff_delay(
                attempt,
                self._config.base_retry_delay,
                self._config.max_retry_delay,
                self._config.retry_jitter,
            )
            logger.warning(
                "Transient error from %s for %s (attempt %d/%d): %s. Retrying in %.2fs",
                binding.key,
                entity_id,
                attempt + 1,
                max_retries + 1,
                error,
                delay,
            )
            await asyncio.sleep(delay)
            attempt += 1

        return self._cache_or_fallback(entity_id, binding, adapter)

    def _cache_or_fallback(self, entity_id: str, binding: SourceBinding, adapter: SourceAdapter) -> SignalResult:
        if adapter.supports_caching:
            cached = self._cache.get_fresh(
                entity_id,
                binding.source_id,
                binding.signal_type,
                ttl_seconds=adapter.config.ttl_seconds,
            )
            if cached is not None:
                logger.info(f"Using cached {binding.key} for {entity_id} (confidence {cached.confidence:.2f})")
                return cached

        return SignalResult(
            source_id=binding.source_id,
            entity_id=entity_id,
            signal_type=binding.signal_type,
            payload=dict(FALLBACK_PAYLOAD),
            confidence=self._config.fallback_confidence,
            fetched_at=datetime.now(timezone.utc),
            provenance=Provenance.FALLBACK,
        )

    def _mark_degraded(self, source_id: str, error: SourceError) -> None:
        if source_id in self._degraded:
            return
        degraded = DegradedSource(
            source_id=source_id,
            reason=str(error),
            error_type=type(error).__name__,
            since=datetime.now(timezone.utc),
        )
        self._degraded[source_id] = degraded
        logger.warning(f"Source {source_id} marked degraded: {degraded.error_type}: {degraded.reason}")
        if self._on_degraded is not None:
            self._on_degraded(degraded)

    def _mark_recovered(self, source_id: str) -> None:
        if self._degraded.pop(source_id, None) is not None:
            logger.info(f"Source {source_id} recovered")
