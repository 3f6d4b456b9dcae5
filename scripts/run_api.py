#!/usr/bin/env python3
"""Run the trust score API server.

Starts uvicorn with the FastAPI app from ``trustapi.main``. The scoring
scheduler runs inside the API process unless TRUST_SCHEDULER_ENABLED=0.

Usage:
    python scripts/run_api.py [--host HOST] [--port PORT]

Environment:
    DATABASE_URL - Optional. Snapshots are kept in memory when unset.
    TRUST_LOG_LEVEL - Log level (default: INFO)

Examples:
    python scripts/run_api.py
    python scripts/run_api.py --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import uvicorn

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main() -> int:
    """Run the API server."""
    parser = argparse.ArgumentParser(description="Run the trust score API server.")
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    args = parser.parse_args()

    log_level = os.environ.get("TRUST_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not os.environ.get("DATABASE_URL"):
        print("Warning: DATABASE_URL not set, snapshots will not survive a restart", file=sys.stderr)

    print(f"Starting trust API on {args.host}:{args.port}")
    print("Endpoints:")
    print(f"  - GET  http://{args.host}:{args.port}/trust/entities")
    print(f"  - GET  http://{args.host}:{args.port}/trust/stream")
    print(f"  - POST http://{args.host}:{args.port}/trust/cycles")
    print(f"  - GET  http://{args.host}:{args.port}/system/health")
    print()

    uvicorn.run(
        "trustapi.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
