"""Scoring cycle routes: manual trigger, abort and the cycle log."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from trustcore.pipeline.cycle import CycleInProgressError
from trustcore.service import TrustService
from trustcore.storage.serialization import cycle_to_dict
from trustapi.deps import get_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trust/cycles", tags=["cycles"])


def _conflict(service: TrustService) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"status": "cycle_in_progress", "cycle_id": service.runner.current_cycle_id},
    )


@router.post("")
async def trigger_cycle(
    wait: bool = Query(False, description="Run the cycle inline and return its record"),
    service: TrustService = Depends(get_service),
):
    """Trigger a manual scoring cycle.

    Returns 202 immediately unless ``wait`` is set, in which case the finished
    cycle record is returned. Returns 409 while another cycle is running.
    """
    if wait:
        try:
            record = await service.runner.run_cycle("manual")
        except CycleInProgressError:
            raise _conflict(service)
        return cycle_to_dict(record)

    if not service.trigger_cycle():
        raise _conflict(service)
    logger.info("Manual scoring cycle requested via API")
    return JSONResponse(status_code=202, content={"status": "accepted"})


@router.get("")
async def list_cycles(
    limit: int = Query(20, ge=1, le=200, description="Max cycles to return"),
    service: TrustService = Depends(get_service),
):
    """Most recent scoring cycles, newest first."""
    records = await asyncio.to_thread(service.store.list_cycles, limit=limit)
    return {
        "running": service.runner.is_running,
        "current_cycle_id": service.runner.current_cycle_id,
        "next_run_at": service.scheduler.next_run_at.isoformat() if service.scheduler.next_run_at else None,
        "cycles": [cycle_to_dict(r) for r in records],
    }


@router.post("/abort")
async def abort_cycle(service: TrustService = Depends(get_service)):
    """Abort the running cycle. Snapshots already committed in it are kept."""
    cycle_id = service.runner.current_cycle_id
    aborted = service.runner.abort()
    if aborted:
        logger.warning(f"Cycle {cycle_id} abort requested via API")
    return {"aborted": aborted, "cycle_id": cycle_id if aborted else None}
