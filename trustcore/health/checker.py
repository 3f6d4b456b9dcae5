"""Health check logic for trust pipeline components."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Optional

from trustcore.pipeline.cycle import CycleRunner
from trustcore.signals.collector import SignalCollector
from trustcore.storage.interfaces import SnapshotStore


@dataclass
class HealthStatus:
    """Health status for a component."""

    status: Literal["ok", "degraded", "error"]
    latency_ms: Optional[float] = None
    message: Optional[str] = None
    details: Optional[dict] = None


def worst_status(statuses: list[str]) -> str:
    if "error" in statuses:
        return "error"
    if "degraded" in statuses:
        return "degraded"
    return "ok"


class HealthChecker:
    """Health checker for the snapshot store, sources and scoring cycles."""

    def __init__(
        self,
        *,
        store: SnapshotStore,
        collector: SignalCollector,
        runner: CycleRunner,
        cycle_interval_seconds: float,
    ) -> None:
        self._store = store
        self._collector = collector
        self._runner = runner
        self._cycle_interval_seconds = cycle_interval_seconds

    def check_store(self) -> HealthStatus:
        """Check snapshot store connectivity and measure latency."""
        try:
            start_time = time.time()
            self._store.ping()
            latency_ms = (time.time() - start_time) * 1000
        except Exception as exc:
            return HealthStatus(
                status="error",
                message=f"Snapshot store error: {type(exc).__name__}",
                details={"error": str(exc)},
            )

        return HealthStatus(
            status="ok",
            latency_ms=round(latency_ms, 2),
            message=f"{type(self._store).__name__} reachable",
        )

    def check_sources(self) -> HealthStatus:
        modes = self._collector.source_modes()
        degraded = self._collector.degraded_sources
        details = {
            "modes": modes,
            "degraded": {
                source_id: {"error_type": d.error_type, "reason": d.reason, "since": d.since.isoformat()}
                for source_id, d in degraded.items()
            },
        }

        if degraded:
            return HealthStatus(
                status="degraded",
                message=f"{len(degraded)} of {len(modes)} sources degraded",
                details=details,
            )
        return HealthStatus(status="ok", message=f"{len(modes)} sources healthy", details=details)

    def check_cycles(self) -> HealthStatus:
        record = self._runner.last_record
        if record is None:
            if self._runner.is_running:
                return HealthStatus(status="ok", message="First cycle running")
            return HealthStatus(status="degraded", message="No scoring cycle has completed yet")

        details = {
            "cycle_id": record.cycle_id,
            "status": record.status,
            "committed": len(record.committed),
            "skipped": len(record.skipped),
            "failed": len(record.failed),
            "finished_at": record.finished_at.isoformat() if record.finished_at else None,
        }

        if record.finished_at is not None:
            age = (datetime.now(timezone.utc) - record.finished_at).total_seconds()
            if age > 2 * self._cycle_interval_seconds:
                return HealthStatus(
                    status="degraded",
                    message=f"Last cycle finished {int(age)}s ago",
                    details=details,
                )

        if record.status in ("partial", "aborted", "skipped"):
            return HealthStatus(status="degraded", message=f"Last cycle {record.status}", details=details)

        return HealthStatus(status="ok", message=f"Cycle {record.cycle_id} completed", details=details)

    def check_all(self) -> dict[str, HealthStatus]:
        return {
            "store": self.check_store(),
            "sources": self.check_sources(),
            "cycles": self.check_cycles(),
        }
