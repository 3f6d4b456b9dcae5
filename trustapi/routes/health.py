"""Health check API endpoint."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import APIRouter, Depends, Request

from trustcore.health.checker import worst_status
from trustcore.service import TrustService
from trustapi.deps import get_service

router = APIRouter(prefix="/system/health", tags=["health"])


@router.get("")
async def health_check(request: Request, service: TrustService = Depends(get_service)):
    """Get system health status.

    Returns health status for:
    - Snapshot store connectivity and latency
    - Signal source modes and degradation
    - Scoring cycle freshness
    - API uptime
    """
    # Store ping may block on the database
    checks = await asyncio.to_thread(service.health.check_all)

    uptime_seconds = int(time.time() - request.app.state.started_at)

    result: dict[str, Any] = {
        "api": {
            "status": "ok",
            "uptime_seconds": uptime_seconds,
            "message": "API running",
        }
    }

    for component, status in checks.items():
        result[component] = {
            "status": status.status,
            "message": status.message,
        }
        if status.latency_ms is not None:
            result[component]["latency_ms"] = status.latency_ms
        if status.details:
            result[component]["details"] = status.details

    result["overall"] = {
        "status": worst_status([result["api"]["status"]] + [v.status for v in checks.values()]),
    }
    return result
