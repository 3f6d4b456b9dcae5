"""Content-addressed, TTL-based store of raw signal fetch results.

Entries are keyed by a hash of ``(entity_id, source_id, signal_type)`` and are
never mutated: a newer fetch replaces the entry wholesale. When a directory is
configured every entry is also written as ``<key>.json`` so cached evidence
survives restarts.

Usage:
    cache = SignalCache(directory=Path("data/signal-cache"))
    cache.put(result)
    cached = cache.get_fresh("stake.com", "casinoguru", "rtp", ttl_seconds=21600)
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Awaitable, Callable, Optional, TypeVar

from trustcore.types import Provenance, SignalResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Confidence multiplier reached by an entry that is exactly TTL seconds old.
STALENESS_FLOOR = 0.5


def cache_key(entity_id: str, source_id: str, signal_type: str) -> str:
    """Content address for one (entity, source, signal type) triple."""
    raw = f"{entity_id}\x1f{source_id}\x1f{signal_type}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def stale_confidence(confidence: float, *, age_seconds: float, ttl_seconds: float, floor: float = STALENESS_FLOOR) -> float:
    """Decay confidence linearly with age, down to ``floor * confidence`` at TTL.

    Older entries never score higher than fresher ones for the same source.
    """
    if ttl_seconds <= 0:
        return 0.0
    ratio = min(max(age_seconds / ttl_seconds, 0.0), 1.0)
    return max(0.0, min(1.0, confidence * (1.0 - (1.0 - floor) * ratio)))


def _result_to_dict(result: SignalResult) -> dict[str, Any]:
    return {
        "source_id": result.source_id,
        "entity_id": result.entity_id,
        "signal_type": result.signal_type,
        "payload": dict(result.payload),
        "confidence": result.confidence,
        "fetched_at": result.fetched_at.isoformat(),
        "provenance": result.provenance.value,
    }


def _result_from_dict(data: dict[str, Any]) -> SignalResult:
    fetched_at = datetime.fromisoformat(data["fetched_at"])
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=timezone.utc)
    return SignalResult(
        source_id=data["source_id"],
        entity_id=data["entity_id"],
        signal_type=data["signal_type"],
        payload=data.get("payload") or {},
        confidence=float(data["confidence"]),
        fetched_at=fetched_at,
        provenance=Provenance(data.get("provenance", "live")),
    )


class SignalCache:
    """Thread-safe TTL cache of live signal results."""

    def __init__(self, *, directory: Path | None = None, staleness_floor: float = STALENESS_FLOOR) -> None:
        self._entries: dict[str, SignalResult] = {}
        self._lock = Lock()
        self._directory = directory
        self._staleness_floor = staleness_floor
        if directory is not None:
            directory.mkdir(parents=True, exist_ok=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def put(self, result: SignalResult) -> None:
        """Store a fresh result, superseding any previous entry for its key."""
        if result.provenance is not Provenance.LIVE:
            # Only first-hand evidence resets the TTL.
            return

        key = cache_key(result.entity_id, result.source_id, result.signal_type)
        with self._lock:
            self._entries[key] = result

        if self._directory is not None:
            path = self._directory / f"{key}.json"
            try:
                path.write_text(json.dumps(_result_to_dict(result)), encoding="utf-8")
            except OSError as exc:
                logger.warning(f"Failed to persist cached signal {result.binding_key} for {result.entity_id}: {exc}")

    def get(self, entity_id: str, source_id: str, signal_type: str) -> Optional[SignalResult]:
        """Return the raw stored entry regardless of age."""
        key = cache_key(entity_id, source_id, signal_type)
        with self._lock:
            entry = self._entries.get(key)
        if entry is None and self._directory is not None:
            entry = self._load(key)
        return entry

    def get_fresh(
        self,
        entity_id: str,
        source_id: str,
        signal_type: str,
        *,
        ttl_seconds: float,
        now: datetime | None = None,
    ) -> Optional[SignalResult]:
        """Return a ``cached`` view of the entry if it is younger than the TTL.

        The returned result carries provenance ``cached`` and a confidence
        decayed by age; the stored entry itself is left untouched.
        """
        entry = self.get(entity_id, source_id, signal_type)
        if entry is None:
            return None

        now = now or datetime.now(timezone.utc)
        age = (now - entry.fetched_at).total_seconds()
        if age < 0:
            age = 0.0
        if age >= ttl_seconds:
            logger.debug(f"Cache entry expired for {entity_id} {source_id}:{signal_type} (age {age:.0f}s)")
            return None

        return replace(
            entry,
            provenance=Provenance.CACHED,
            confidence=stale_confidence(
                entry.confidence,
                age_seconds=age,
                ttl_seconds=ttl_seconds,
                floor=self._staleness_floor,
            ),
        )

    def _load(self, key: str) -> Optional[SignalResult]:
        path = self._directory / f"{key}.json"
        if not path.exists():
            return None
        try:
            entry = _result_from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError) as exc:
            logger.warning(f"Ignoring unreadable cache file {path.name}: {exc}")
            return None
        with self._lock:
            # A concurrent put wins over the disk copy.
            entry = self._entries.setdefault(key, entry)
        return entry


class SingleFlight:
    """Collapse concurrent work per key into one shared task.

    One instance lives for one collection cycle: the first caller for a key
    starts the work, every later caller in the same cycle awaits that same
    task and gets the same result.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    async def do(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
        # Shield so one caller giving up does not cancel the shared work.
        return await asyncio.shield(task)

    def cancel_all(self) -> None:
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        self._tasks.clear()
