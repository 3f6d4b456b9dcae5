"""Snapshot persistence.

`InMemorySnapshotStore` serves local runs and tests; `SqlSnapshotStore`
persists to PostgreSQL or SQLite through SQLAlchemy Core.
"""

from trustcore.storage.interfaces import CycleStore, SnapshotStore
from trustcore.storage.memory import InMemorySnapshotStore
from trustcore.storage.sql import SqlSnapshotStore

__all__ = [
    "CycleStore",
    "InMemorySnapshotStore",
    "SnapshotStore",
    "SqlSnapshotStore",
]
