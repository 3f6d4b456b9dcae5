"""Scoring cycles: collect, score, commit, publish.

A cycle allocates a fresh, strictly increasing cycle id, then processes every
tracked entity concurrently. Per entity:

    collect signals -> compute metrics -> composite score -> commit -> publish

Entities are isolated from each other: one entity's failure is recorded and
the rest of the cycle carries on. Commit and publish run shielded from
cancellation, so a snapshot is committed if and only if its update event is
published, even when the cycle is aborted midway.

Usage:
    runner = CycleRunner(entities=..., collector=..., store=..., rollup=..., bus=...)
    record = await runner.run_cycle("manual")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from trustcore.errors import SnapshotWriteError
from trustcore.events.bus import EventBus
from trustcore.events.types import CycleCompletedEvent
from trustcore.rollup.service import TrustRollup
from trustcore.scoring.composite import ScoringPolicy, score_entity
from trustcore.scoring.metrics import compute_metrics
from trustcore.signals.collector import CollectionContext, SignalCollector
from trustcore.storage.interfaces import CycleStore, SnapshotStore
from trustcore.types import CycleRecord, CycleStatus, CycleTrigger, Snapshot, TrackedEntity

logger = logging.getLogger(__name__)


class CycleInProgressError(RuntimeError):
    """A cycle is already running."""


@dataclass
class _CycleState:
    cycle_id: int
    trigger: CycleTrigger
    started_at: datetime
    committed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    fetch_attempts: int = 0
    spent: float = 0.0
    commits: set[asyncio.Task] = field(default_factory=set)

    def record(self, status: CycleStatus, finished_at: Optional[datetime] = None) -> CycleRecord:
        return CycleRecord(
            cycle_id=self.cycle_id,
            trigger=self.trigger,
            status=status,
            started_at=self.started_at,
            finished_at=finished_at,
            committed=tuple(sorted(self.committed)),
            skipped=tuple(sorted(self.skipped)),
            failed=tuple(sorted(self.failed)),
            fetch_attempts=self.fetch_attempts,
            spent=round(self.spent, 4),
        )


class CycleRunner:
    """Runs one scoring cycle at a time."""

    def __init__(
        self,
        *,
        entities: Sequence[TrackedEntity],
        collector: SignalCollector,
        store: SnapshotStore,
        cycles: CycleStore,
        rollup: TrustRollup,
        bus: EventBus,
        policy: ScoringPolicy | None = None,
    ) -> None:
        self._entities = tuple(entities)
        self._collector = collector
        self._store = store
        self._cycles = cycles
        self._rollup = rollup
        self._bus = bus
        self._policy = policy or ScoringPolicy()
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._abort_requested = False
        self.current_cycle_id: Optional[int] = None
        self.last_record: Optional[CycleRecord] = None

    @property
    def entities(self) -> tuple[TrackedEntity, ...]:
        return self._entities

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_cycle(self, trigger: CycleTrigger = "manual") -> CycleRecord:
        """Run one full cycle and return its record.

        Raises:
            CycleInProgressError: another cycle holds the runner
        """
        if self._lock.locked():
            raise CycleInProgressError("a scoring cycle is already running")

        async with self._lock:
            cycle_id = await asyncio.to_thread(self._cycles.next_cycle_id)
            state = _CycleState(cycle_id=cycle_id, trigger=trigger, started_at=datetime.now(timezone.utc))
            self.current_cycle_id = cycle_id
            self._abort_requested = False
            await asyncio.to_thread(self._cycles.record_cycle, record=state.record("running"))
            logger.info(f"🚀 Trust cycle {cycle_id} started ({trigger}, {len(self._entities)} entities)")

            self._task = asyncio.create_task(self._execute(state))
            cancelled_from_outside = False
            try:
                await self._task
                status = self._final_status(state)
            except asyncio.CancelledError:
                cancelled_from_outside = not self._abort_requested
                status = "aborted"
            finally:
                self._task = None
                self.current_cycle_id = None

            # Let shielded commits land so the record matches what was published.
            if state.commits:
                await asyncio.gather(*state.commits, return_exceptions=True)

            record = state.record(status, finished_at=datetime.now(timezone.utc))
            await self._finish(record)

            if cancelled_from_outside:
                raise asyncio.CancelledError()
            return record

    def abort(self) -> bool:
        """Cancel the running cycle. Returns False when nothing is running."""
        if self._task is None or self._task.done():
            return False
        self._abort_requested = True
        self._task.cancel()
        logger.warning(f"Trust cycle {self.current_cycle_id} abort requested")
        return True

    async def _finish(self, record: CycleRecord) -> None:
        try:
            await asyncio.to_thread(self._cycles.record_cycle, record=record)
        except Exception:
            logger.exception(f"Failed to record cycle {record.cycle_id}")

        self.last_record = record
        self._bus.publish(
            CycleCompletedEvent(
                cycle_id=record.cycle_id,
                trigger=record.trigger,
                status=record.status,
                committed=record.committed,
                skipped=record.skipped,
                failed=record.failed,
            )
        )
        logger.info(
            "Trust cycle %d %s: %d committed, %d skipped, %d failed, %d fetches, cost %.2f",
            record.cycle_id,
            record.status,
            len(record.committed),
            len(record.skipped),
            len(record.failed),
            record.fetch_attempts,
            record.spent,
        )

    @staticmethod
    def _final_status(state: _CycleState) -> CycleStatus:
        if state.failed or (state.skipped and state.committed):
            return "partial"
        if not state.committed:
            return "skipped"
        return "completed"

    async def _execute(self, state: _CycleState) -> None:
        context = self._collector.new_context(state.cycle_id)
        try:
            await asyncio.gather(*(self._process_entity(entity, state, context) for entity in self._entities))
        finally:
            state.fetch_attempts = context.fetch_attempts
            state.spent = context.spent
            self._collector.close_context(context)

    async def _process_entity(self, entity: TrackedEntity, state: _CycleState, context: CollectionContext) -> None:
        entity_id = entity.entity_id
        try:
            signals = await self._collector.collect_entity(entity, context)
            if not signals.has_evidence:
                logger.warning(f"No live or cached evidence for {entity_id} in cycle {state.cycle_id}, skipping")
                state.skipped.append(entity_id)
                return

            metrics = compute_metrics(signals.results, computed_at=state.started_at)
            provenance = signals.provenance_summary(
                degraded_sources=context.degraded_at_start,
                source_modes=self._collector.source_modes(),
            )
            composite = score_entity(
                entity_id=entity_id,
                cycle_id=state.cycle_id,
                metrics=metrics,
                provenance=provenance,
                policy=self._policy,
            )
            snapshot = Snapshot(
                entity_id=entity_id,
                cycle_id=state.cycle_id,
                composite=composite,
                stored_at=datetime.now(timezone.utc),
            )

            commit = asyncio.ensure_future(self._commit_and_publish(snapshot, state))
            state.commits.add(commit)
            await asyncio.shield(commit)
        except Exception:
            logger.exception(f"Scoring failed for {entity_id} in cycle {state.cycle_id}")
            state.failed.append(entity_id)

    async def _commit_and_publish(self, snapshot: Snapshot, state: _CycleState) -> None:
        try:
            await asyncio.to_thread(self._store.commit, snapshot=snapshot)
        except SnapshotWriteError as exc:
            logger.error(f"Snapshot write failed for {snapshot.entity_id} in cycle {snapshot.cycle_id}: {exc}")
            state.failed.append(snapshot.entity_id)
            return

        state.committed.append(snapshot.entity_id)
        self._rollup.publish_commit(snapshot)
        composite = snapshot.composite
        logger.info(
            f"{snapshot.entity_id} scored {composite.overall:.1f} ({composite.grade}) "
            f"in cycle {snapshot.cycle_id}, confidence {composite.confidence:.2f}"
        )
