#!/usr/bin/env python3
"""Create the trust snapshot tables.

Applies ``trustcore/storage/schema.sql``. Statements are idempotent, so the
script is safe to re-run.

Usage:
  python scripts/init_db.py

Exit codes:
  0 = success
  1 = failure (DATABASE_URL missing or schema error)
"""

from __future__ import annotations

import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from trustcore.storage.sql import SqlSnapshotStore, iter_sql_statements, load_schema_sql  # noqa: E402


def main() -> int:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("❌ DATABASE_URL is not set", file=sys.stderr)
        return 1

    statements = list(iter_sql_statements(load_schema_sql()))
    store = SqlSnapshotStore(database_url=database_url)
    try:
        store.ensure_schema()
    except SQLAlchemyError as exc:
        print(f"❌ schema-fail: {type(exc).__name__}", file=sys.stderr)
        return 1
    finally:
        store.dispose()

    print(f"✅ schema applied ({len(statements)} statements)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
