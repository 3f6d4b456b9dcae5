"""In-process snapshot store used when no DATABASE_URL is configured."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Optional, Sequence

from trustcore.errors import SnapshotWriteError
from trustcore.storage.interfaces import CycleStore, SnapshotStore
from trustcore.types import CycleRecord, Snapshot

logger = logging.getLogger(__name__)


class InMemorySnapshotStore(SnapshotStore, CycleStore):
    """Lock-guarded dict store. Contents are lost on restart."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._snapshots: dict[tuple[str, int], Snapshot] = {}
        self._latest: dict[str, int] = {}
        self._cycles: dict[int, CycleRecord] = {}
        self._last_cycle_id = 0

    def commit(self, *, snapshot: Snapshot) -> None:
        key = (snapshot.entity_id, snapshot.cycle_id)
        with self._lock:
            if key in self._snapshots:
                raise SnapshotWriteError(f"snapshot {snapshot.entity_id}@{snapshot.cycle_id} already committed")
            self._snapshots[key] = snapshot
            current = self._latest.get(snapshot.entity_id)
            if current is None or snapshot.cycle_id >= current:
                self._latest[snapshot.entity_id] = snapshot.cycle_id

    def get_latest(self, *, entity_id: str) -> Optional[Snapshot]:
        with self._lock:
            cycle_id = self._latest.get(entity_id)
            if cycle_id is None:
                return None
            return self._snapshots[(entity_id, cycle_id)]

    def get_at_cycle(self, *, entity_id: str, cycle_id: int) -> Optional[Snapshot]:
        with self._lock:
            return self._snapshots.get((entity_id, cycle_id))

    def list_latest(self) -> Sequence[Snapshot]:
        with self._lock:
            return [self._snapshots[(entity_id, cycle_id)] for entity_id, cycle_id in sorted(self._latest.items())]

    def get_history(self, *, entity_id: str, limit: int = 50) -> Sequence[Snapshot]:
        with self._lock:
            rows = [s for (e, _), s in self._snapshots.items() if e == entity_id]
        rows.sort(key=lambda s: s.cycle_id, reverse=True)
        return rows[:limit]

    def ping(self) -> None:
        return None

    def next_cycle_id(self) -> int:
        with self._lock:
            snapshot_max = max((cycle_id for _, cycle_id in self._snapshots), default=0)
            self._last_cycle_id = max(self._last_cycle_id, snapshot_max, max(self._cycles, default=0)) + 1
            return self._last_cycle_id

    def record_cycle(self, *, record: CycleRecord) -> None:
        with self._lock:
            self._cycles[record.cycle_id] = record

    def list_cycles(self, *, limit: int = 20) -> Sequence[CycleRecord]:
        with self._lock:
            records = sorted(self._cycles.values(), key=lambda r: r.cycle_id, reverse=True)
        return records[:limit]
