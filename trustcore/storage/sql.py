"""SQL-backed snapshot store (PostgreSQL in production, SQLite for local runs).

The snapshot row and the latest-pointer upsert share one transaction, so a
reader never sees a pointer to a snapshot that is not there, and the pointer
only ever moves forward in cycle order.
"""

from __future__ import annotations

import json
import logging
from importlib import resources
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from trustcore.errors import SnapshotSchemaError, SnapshotWriteError
from trustcore.storage.interfaces import CycleStore, SnapshotStore
from trustcore.storage.serialization import (
    cycle_from_dict,
    cycle_to_dict,
    snapshot_from_dict,
    snapshot_to_dict,
)
from trustcore.types import CycleRecord, Snapshot

logger = logging.getLogger(__name__)


def iter_sql_statements(sql: str) -> Iterable[str]:
    """Split a schema script into statements, dropping ``--`` comment lines."""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    for stmt in "\n".join(lines).split(";"):
        stmt = stmt.strip()
        if stmt:
            yield stmt


def load_schema_sql() -> str:
    return resources.files("trustcore.storage").joinpath("schema.sql").read_text(encoding="utf-8")


class SqlSnapshotStore(SnapshotStore, CycleStore):
    """Snapshot store over SQLAlchemy Core.

    `database_url` comes from the environment (DATABASE_URL). Do not log it.
    """

    def __init__(self, *, database_url: str, engine: Engine | None = None) -> None:
        self._database_url = database_url
        self._engine = engine
        self._last_cycle_id = 0

    def _get_engine(self) -> Engine:
        if self._engine is None:
            connect_args: dict[str, Any] = {}
            if self._database_url.startswith("sqlite"):
                connect_args["check_same_thread"] = False
            self._engine = create_engine(
                self._database_url,
                echo=False,
                pool_pre_ping=True,
                connect_args=connect_args,
            )
        return self._engine

    def ensure_schema(self) -> None:
        engine = self._get_engine()
        with engine.begin() as conn:
            for stmt in iter_sql_statements(load_schema_sql()):
                conn.execute(text(stmt))
        logger.info("Trust snapshot schema ensured")

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def commit(self, *, snapshot: Snapshot) -> None:
        engine = self._get_engine()
        payload = json.dumps(snapshot_to_dict(snapshot), sort_keys=True)

        try:
            with engine.begin() as conn:
                conn.execute(
                    text(
                        """
                        INSERT INTO trust_snapshots
                            (entity_id, cycle_id, overall, confidence, schema_version, stored_at, payload)
                        VALUES
                            (:entity_id, :cycle_id, :overall, :confidence, :schema_version, :stored_at, :payload)
                        """
                    ),
                    {
                        "entity_id": snapshot.entity_id,
                        "cycle_id": snapshot.cycle_id,
                        "overall": snapshot.composite.overall,
                        "confidence": snapshot.composite.confidence,
                        "schema_version": snapshot.schema_version,
                        "stored_at": snapshot.stored_at.isoformat(),
                        "payload": payload,
                    },
                )
                conn.execute(
                    text(
                        """
                        INSERT INTO trust_latest (entity_id, cycle_id)
                        VALUES (:entity_id, :cycle_id)
                        ON CONFLICT (entity_id) DO UPDATE
                        SET cycle_id = excluded.cycle_id
                        WHERE excluded.cycle_id >= trust_latest.cycle_id
                        """
                    ),
                    {"entity_id": snapshot.entity_id, "cycle_id": snapshot.cycle_id},
                )
        except IntegrityError as exc:
            raise SnapshotWriteError(
                f"snapshot {snapshot.entity_id}@{snapshot.cycle_id} already committed"
            ) from exc
        except SQLAlchemyError as exc:
            raise SnapshotWriteError(f"failed to commit snapshot {snapshot.entity_id}@{snapshot.cycle_id}: {exc}") from exc

    def _decode(self, payload: str) -> Optional[Snapshot]:
        try:
            return snapshot_from_dict(json.loads(payload))
        except SnapshotSchemaError:
            raise
        except (ValueError, KeyError, TypeError) as exc:
            logger.error(f"Unreadable snapshot payload: {exc}")
            return None

    def get_latest(self, *, entity_id: str) -> Optional[Snapshot]:
        engine = self._get_engine()
        with engine.connect() as conn:
            row = conn.execute(
                text(
                    """
                    SELECT s.payload
                    FROM trust_latest l
                    JOIN trust_snapshots s
                      ON s.entity_id = l.entity_id AND s.cycle_id = l.cycle_id
                    WHERE l.entity_id = :entity_id
                    """
                ),
                {"entity_id": entity_id},
            ).fetchone()
        return None if row is None else self._decode(row[0])

    def get_at_cycle(self, *, entity_id: str, cycle_id: int) -> Optional[Snapshot]:
        engine = self._get_engine()
        with engine.connect() as conn:
            row = conn.execute(
                text("SELECT payload FROM trust_snapshots WHERE entity_id = :entity_id AND cycle_id = :cycle_id"),
                {"entity_id": entity_id, "cycle_id": cycle_id},
            ).fetchone()
        return None if row is None else self._decode(row[0])

    def list_latest(self) -> Sequence[Snapshot]:
        engine = self._get_engine()
        with engine.connect() as conn:
            rows = conn.execute(
                text(
                    """
                    SELECT s.payload
                    FROM trust_latest l
                    JOIN trust_snapshots s
                      ON s.entity_id = l.entity_id AND s.cycle_id = l.cycle_id
                    ORDER BY l.entity_id
                    """
                )
            ).fetchall()
        snapshots = []
        for row in rows:
            try:
                snapshot = self._decode(row[0])
            except SnapshotSchemaError as exc:
                logger.error(f"Skipping snapshot from a newer schema: {exc}")
                continue
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def get_history(self, *, entity_id: str, limit: int = 50) -> Sequence[Snapshot]:
        engine = self._get_engine()
        with engine.connect() as conn:
            rows = conn.execute(
                text(
                    """
                    SELECT payload
                    FROM trust_snapshots
                    WHERE entity_id = :entity_id
                    ORDER BY cycle_id DESC
                    LIMIT :limit
                    """
                ),
                {"entity_id": entity_id, "limit": int(limit)},
            ).fetchall()
        return [s for s in (self._decode(r[0]) for r in rows) if s is not None]

    def ping(self) -> None:
        engine = self._get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    def next_cycle_id(self) -> int:
        engine = self._get_engine()
        with engine.connect() as conn:
            row = conn.execute(
                text(
                    """
                    SELECT MAX(m) FROM (
                        SELECT MAX(cycle_id) AS m FROM trust_cycles
                        UNION ALL
                        SELECT MAX(cycle_id) AS m FROM trust_snapshots
                    ) ids
                    """
                )
            ).fetchone()
        stored = int(row[0]) if row is not None and row[0] is not None else 0
        self._last_cycle_id = max(self._last_cycle_id, stored) + 1
        return self._last_cycle_id

    def record_cycle(self, *, record: CycleRecord) -> None:
        engine = self._get_engine()
        detail = cycle_to_dict(record)
        with engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO trust_cycles (cycle_id, trigger_kind, status, started_at, finished_at, detail)
                    VALUES (:cycle_id, :trigger_kind, :status, :started_at, :finished_at, :detail)
                    ON CONFLICT (cycle_id) DO UPDATE
                    SET status = excluded.status,
                        finished_at = excluded.finished_at,
                        detail = excluded.detail
                    """
                ),
                {
                    "cycle_id": record.cycle_id,
                    "trigger_kind": record.trigger,
                    "status": record.status,
                    "started_at": detail["started_at"],
                    "finished_at": detail["finished_at"],
                    "detail": json.dumps(detail, sort_keys=True),
                },
            )

    def list_cycles(self, *, limit: int = 20) -> Sequence[CycleRecord]:
        engine = self._get_engine()
        with engine.connect() as conn:
            rows = conn.execute(
                text("SELECT detail FROM trust_cycles ORDER BY cycle_id DESC LIMIT :limit"),
                {"limit": int(limit)},
            ).fetchall()
        return [cycle_from_dict(json.loads(r[0])) for r in rows]
