"""JSON-safe encoding of scores and snapshots.

Shared by the SQL store, event payloads and the HTTP API so a composite score
has exactly one wire shape everywhere.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from trustcore.errors import SnapshotSchemaError
from trustcore.types import (
    SCHEMA_VERSION,
    CategoryScore,
    CompositeScore,
    CycleRecord,
    Metric,
    ProvenanceSummary,
    RationaleEntry,
    Snapshot,
)


def _dt(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def composite_to_dict(composite: CompositeScore) -> dict[str, Any]:
    summary = composite.provenance_summary
    return {
        "entity_id": composite.entity_id,
        "cycle_id": composite.cycle_id,
        "overall": composite.overall,
        "grade": composite.grade,
        "confidence": composite.confidence,
        "category_breakdown": [
            {"category": c.category, "score": c.score, "confidence": c.confidence, "weight": c.weight}
            for c in composite.category_breakdown
        ],
        "rationale": [
            {"metric": r.metric, "category": r.category, "value": r.value, "magnitude": r.magnitude, "reason": r.reason}
            for r in composite.rationale
        ],
        "provenance_summary": {
            "live": summary.live,
            "cached": summary.cached,
            "fallback": summary.fallback,
            "missing": summary.missing,
            "low_confidence": summary.low_confidence,
            "degraded_sources": list(summary.degraded_sources),
            "source_modes": dict(summary.source_modes),
        },
        "metrics": [
            {
                "name": m.name,
                "category": m.category,
                "value": m.value,
                "confidence": m.confidence,
                "contributing_signals": list(m.contributing_signals),
                "computed_at": m.computed_at.isoformat(),
                "neutral": m.neutral,
            }
            for m in composite.metrics
        ],
    }


def composite_from_dict(data: Mapping[str, Any]) -> CompositeScore:
    summary = data.get("provenance_summary") or {}
    return CompositeScore(
        entity_id=data["entity_id"],
        cycle_id=int(data["cycle_id"]),
        overall=float(data["overall"]),
        grade=data.get("grade", "F"),
        confidence=float(data["confidence"]),
        category_breakdown=tuple(
            CategoryScore(
                category=c["category"],
                score=float(c["score"]),
                confidence=float(c["confidence"]),
                weight=float(c["weight"]),
            )
            for c in data.get("category_breakdown", [])
        ),
        rationale=tuple(
            RationaleEntry(
                metric=r["metric"],
                category=r["category"],
                value=float(r["value"]),
                magnitude=float(r["magnitude"]),
                reason=r["reason"],
            )
            for r in data.get("rationale", [])
        ),
        provenance_summary=ProvenanceSummary(
            live=int(summary.get("live", 0)),
            cached=int(summary.get("cached", 0)),
            fallback=int(summary.get("fallback", 0)),
            missing=int(summary.get("missing", 0)),
            low_confidence=bool(summary.get("low_confidence", False)),
            degraded_sources=tuple(summary.get("degraded_sources", [])),
            source_modes=dict(summary.get("source_modes", {})),
        ),
        metrics=tuple(
            Metric(
                name=m["name"],
                category=m["category"],
                value=float(m["value"]),
                confidence=float(m["confidence"]),
                contributing_signals=tuple(m.get("contributing_signals", [])),
                computed_at=_dt(m["computed_at"]),
                neutral=bool(m.get("neutral", False)),
            )
            for m in data.get("metrics", [])
        ),
    )


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "entity_id": snapshot.entity_id,
        "cycle_id": snapshot.cycle_id,
        "stored_at": snapshot.stored_at.isoformat(),
        "schema_version": snapshot.schema_version,
        "composite": composite_to_dict(snapshot.composite),
    }


def snapshot_from_dict(data: Mapping[str, Any]) -> Snapshot:
    """Decode a stored snapshot.

    Raises:
        SnapshotSchemaError: written by a newer schema than this build understands
    """
    version = int(data.get("schema_version", 1))
    if version > SCHEMA_VERSION:
        raise SnapshotSchemaError(
            f"snapshot {data.get('entity_id')}@{data.get('cycle_id')} has schema v{version}, "
            f"this build reads up to v{SCHEMA_VERSION}"
        )
    return Snapshot(
        entity_id=data["entity_id"],
        cycle_id=int(data["cycle_id"]),
        composite=composite_from_dict(data["composite"]),
        stored_at=_dt(data["stored_at"]),
        schema_version=version,
    )


def cycle_to_dict(record: CycleRecord) -> dict[str, Any]:
    return {
        "cycle_id": record.cycle_id,
        "trigger": record.trigger,
        "status": record.status,
        "started_at": record.started_at.isoformat(),
        "finished_at": record.finished_at.isoformat() if record.finished_at else None,
        "committed": list(record.committed),
        "skipped": list(record.skipped),
        "failed": list(record.failed),
        "fetch_attempts": record.fetch_attempts,
        "spent": record.spent,
    }


def cycle_from_dict(data: Mapping[str, Any]) -> CycleRecord:
    return CycleRecord(
        cycle_id=int(data["cycle_id"]),
        trigger=data["trigger"],
        status=data["status"],
        started_at=_dt(data["started_at"]),
        finished_at=_dt(data["finished_at"]) if data.get("finished_at") else None,
        committed=tuple(data.get("committed", [])),
        skipped=tuple(data.get("skipped", [])),
        failed=tuple(data.get("failed", [])),
        fetch_attempts=int(data.get("fetch_attempts", 0)),
        spent=float(data.get("spent", 0.0)),
    )
