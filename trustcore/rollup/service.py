"""Trust rollup: latest-score cache, board view and update fan-out.

The rollup is the read side of the pipeline. It mirrors the latest committed
snapshot per entity in memory (rehydrated from the store on start), answers
point-in-time queries by delegating to the store, and publishes one
``TrustUpdatedEvent`` per committed snapshot.

Each entity also carries a rolling 24h volatility: the population standard
deviation of its score deltas inside the window, scaled so a 50 point spread
reads as 1.0. Volatility maps to a risk level, and the board lists the most
at-risk entities first, worst score first within a level.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Optional, Sequence

from trustcore.errors import EventPublishError
from trustcore.events.bus import EventBus, Subscription
from trustcore.events.types import TrustUpdatedEvent
from trustcore.storage.interfaces import SnapshotStore
from trustcore.types import CompositeScore, RiskLevel, Snapshot

logger = logging.getLogger(__name__)

VOLATILITY_WINDOW = timedelta(hours=24)
VOLATILITY_SCALE = 50.0
# Snapshots replayed per entity on start to rebuild deltas and volatility.
REHYDRATE_DEPTH = 48

RISK_RANK: dict[str, int] = {"critical": 5, "high": 4, "elevated": 3, "watch": 2, "low": 1}


def volatility(deltas: Sequence[float]) -> float:
    """Scaled standard deviation of score deltas, clamped to 0-1."""
    if len(deltas) < 2:
        return 0.0
    return round(min(1.0, statistics.pstdev(deltas) / VOLATILITY_SCALE), 4)


def classify_risk(value: float) -> RiskLevel:
    if value < 0.15:
        return "low"
    if value < 0.30:
        return "watch"
    if value < 0.50:
        return "elevated"
    if value < 0.70:
        return "high"
    return "critical"


@dataclass(frozen=True)
class BoardEntry:
    entity_id: str
    composite: CompositeScore
    previous_overall: Optional[float] = None
    volatility: float = 0.0

    @property
    def delta(self) -> Optional[float]:
        if self.previous_overall is None:
            return None
        return round(self.composite.overall - self.previous_overall, 2)

    @property
    def risk_level(self) -> RiskLevel:
        return classify_risk(self.volatility)


class TrustRollup:
    """Latest-score view over the snapshot store."""

    def __init__(self, store: SnapshotStore, bus: EventBus) -> None:
        self._store = store
        self._bus = bus
        self._lock = Lock()
        self._latest: dict[str, Snapshot] = {}
        self._previous: dict[str, float] = {}
        self._deltas: dict[str, list[tuple[datetime, float]]] = {}
        self.started = False

    @property
    def bus(self) -> EventBus:
        return self._bus

    async def start(self) -> None:
        """Rehydrate latest scores, previous scores and deltas from the store."""
        latest = await asyncio.to_thread(self._store.list_latest)
        replayed = 0
        for snapshot in latest:
            history = await asyncio.to_thread(
                self._store.get_history,
                entity_id=snapshot.entity_id,
                limit=REHYDRATE_DEPTH,
            )
            with self._lock:
                for past in reversed(history):
                    self._remember(past)
            replayed += len(history)
        self.started = True
        logger.info(f"Trust rollup started with {len(latest)} entities ({replayed} snapshots replayed)")

    def _remember(self, snapshot: Snapshot) -> Optional[float]:
        """Advance the cached latest snapshot; returns the previous overall score."""
        entity_id = snapshot.entity_id
        current = self._latest.get(entity_id)
        if current is not None and snapshot.cycle_id <= current.cycle_id:
            return None
        previous = current.composite.overall if current is not None else None
        self._latest[entity_id] = snapshot
        if previous is not None:
            self._previous[entity_id] = previous
            window = self._deltas.setdefault(entity_id, [])
            window.append((snapshot.stored_at, snapshot.composite.overall - previous))
            cutoff = snapshot.stored_at - VOLATILITY_WINDOW
            window[:] = [(at, d) for at, d in window if at >= cutoff]
        return previous

    def _volatility(self, entity_id: str) -> float:
        return volatility([d for _, d in self._deltas.get(entity_id, ())])

    def publish_commit(self, snapshot: Snapshot) -> bool:
        """Record a committed snapshot and publish its update event.

        Publishing failures are logged and swallowed: the snapshot is already
        durable, and subscribers can always re-read it through the query API.
        """
        with self._lock:
            previous = self._remember(snapshot)
            current = self._volatility(snapshot.entity_id)

        event = TrustUpdatedEvent(
            composite=snapshot.composite,
            previous_overall=previous,
            volatility=current,
            risk_level=classify_risk(current),
        )
        try:
            self._bus.publish(event)
        except Exception as exc:
            error = EventPublishError(f"failed to publish update for {snapshot.entity_id}@{snapshot.cycle_id}: {exc}")
            logger.error(str(error), exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_latest_score(self, entity_id: str) -> Optional[CompositeScore]:
        with self._lock:
            snapshot = self._latest.get(entity_id)
        if snapshot is None:
            snapshot = await asyncio.to_thread(self._store.get_latest, entity_id=entity_id)
        return snapshot.composite if snapshot is not None else None

    async def get_score_at_cycle(self, entity_id: str, cycle_id: int) -> Optional[CompositeScore]:
        snapshot = await asyncio.to_thread(self._store.get_at_cycle, entity_id=entity_id, cycle_id=cycle_id)
        return snapshot.composite if snapshot is not None else None

    async def get_history(self, entity_id: str, limit: int = 50) -> Sequence[Snapshot]:
        return await asyncio.to_thread(self._store.get_history, entity_id=entity_id, limit=limit)

    def list_latest(self) -> list[BoardEntry]:
        """Every scored entity, highest risk first, then worst overall score first."""
        with self._lock:
            entries = [
                BoardEntry(
                    entity_id=entity_id,
                    composite=snapshot.composite,
                    previous_overall=self._previous.get(entity_id),
                    volatility=self._volatility(entity_id),
                )
                for entity_id, snapshot in self._latest.items()
            ]
        entries.sort(key=lambda e: (-RISK_RANK[e.risk_level], e.composite.overall, e.entity_id))
        return entries

    def subscribe(self, entity_id: Optional[str] = None) -> Subscription:
        return self._bus.subscribe(entity_id=entity_id)
