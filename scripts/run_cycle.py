#!/usr/bin/env python3
"""Run a single scoring cycle and print the resulting board.

Useful for cron-style deployments or for checking source configuration
without starting the API.

Usage:
    python scripts/run_cycle.py
    python scripts/run_cycle.py --entity stake.com --entity rollbit.com
    python scripts/run_cycle.py --mock   # force fixture data for every source
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from trustcore.config import load_config  # noqa: E402
from trustcore.service import TrustService  # noqa: E402

logging.basicConfig(
    level=os.environ.get("TRUST_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("trust-cycle")


async def main() -> int:
    parser = argparse.ArgumentParser(description="Run one trust scoring cycle")
    parser.add_argument(
        "--entity",
        action="append",
        default=None,
        help="Entity to score (repeatable; default: MONITORED_ENTITIES or built-in list)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a JSON config file (default: TRUST_CONFIG_FILE)",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use fixture data for every source",
    )
    args = parser.parse_args()

    env = dict(os.environ)
    if args.entity:
        env["MONITORED_ENTITIES"] = ",".join(args.entity)
    if args.mock:
        env["USE_MOCK_TRUST_DATA"] = "1"

    config_path = Path(args.config) if args.config else None
    service = TrustService(load_config(env=env, path=config_path))
    await service.start(scheduler=False)
    try:
        record = await service.runner.run_cycle("manual")
    finally:
        await service.stop()

    logger.info(
        f"📊 Cycle {record.cycle_id} {record.status}: "
        f"{len(record.committed)} committed, {len(record.skipped)} skipped, {len(record.failed)} failed"
    )

    print(f"{'entity':<20} {'overall':>8} {'grade':>6} {'conf':>6}  top concern")
    for entry in service.rollup.list_latest():
        composite = entry.composite
        concern = composite.rationale[0].reason if composite.rationale else "-"
        flag = " (low confidence)" if composite.provenance_summary.low_confidence else ""
        print(
            f"{entry.entity_id:<20} {composite.overall:>8.2f} {composite.grade:>6} "
            f"{composite.confidence:>6.2f}  {concern}{flag}"
        )

    return 0 if record.status in ("completed", "partial") else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
