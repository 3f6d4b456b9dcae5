from __future__ import annotations

from typing import Optional, Protocol, Sequence

from trustcore.types import CycleRecord, Snapshot


class SnapshotStore(Protocol):
    def commit(self, *, snapshot: Snapshot) -> None:
        """Atomically persist a snapshot and advance the entity's latest pointer.

        The pointer never moves to an older cycle. A second commit for the same
        (entity_id, cycle_id) raises SnapshotWriteError and changes nothing.
        """

    def get_latest(self, *, entity_id: str) -> Optional[Snapshot]:
        """Snapshot of the highest committed cycle for an entity."""

    def get_at_cycle(self, *, entity_id: str, cycle_id: int) -> Optional[Snapshot]:
        """Snapshot committed by one specific cycle."""

    def list_latest(self) -> Sequence[Snapshot]:
        """Latest snapshot of every entity that has one."""

    def get_history(self, *, entity_id: str, limit: int = 50) -> Sequence[Snapshot]:
        """Snapshots for an entity, newest cycle first."""

    def ping(self) -> None:
        """Raise if the backing store is unreachable."""


class CycleStore(Protocol):
    def next_cycle_id(self) -> int:
        """Allocate a cycle id strictly greater than every id handed out before."""

    def record_cycle(self, *, record: CycleRecord) -> None:
        """Insert or update a cycle record."""

    def list_cycles(self, *, limit: int = 20) -> Sequence[CycleRecord]:
        """Most recent cycles first."""
