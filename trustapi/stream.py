"""Server-Sent Events feed of trust updates.

Each connection gets its own bus subscription. The current latest score(s)
are pushed first, then every update as it is published, with a heartbeat
whenever the feed has been idle for ``HEARTBEAT_SECONDS``. A client that
reconnects after missing events can always catch up through the pull API.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from trustcore.rollup.service import TrustRollup
from trustcore.service import TrustService
from trustcore.storage.serialization import composite_to_dict
from trustapi.deps import get_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trust", tags=["stream"])

HEARTBEAT_SECONDS = 30.0


async def trust_updates(
    rollup: TrustRollup,
    entity_id: Optional[str] = None,
    *,
    heartbeat_seconds: float = HEARTBEAT_SECONDS,
) -> AsyncIterator[dict[str, Any]]:
    """Yield the current snapshot(s), then live events and heartbeats."""
    # Subscribe before reading the latest so nothing committed in between is lost.
    subscription = rollup.subscribe(entity_id)
    try:
        if entity_id is not None:
            latest = await rollup.get_latest_score(entity_id)
            initial = [latest] if latest is not None else []
        else:
            initial = [entry.composite for entry in rollup.list_latest()]

        for composite in initial:
            subscription.mark_seen(composite.entity_id, composite.cycle_id)
            yield {"type": "snapshot", "composite": composite_to_dict(composite)}

        while True:
            try:
                event = await subscription.get(timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield {"type": "heartbeat", "timestamp": int(time.time() * 1000)}
                continue
            yield event.to_dict()
    finally:
        subscription.close()


def format_sse(message: dict[str, Any]) -> str:
    return f"event: {message['type']}\ndata: {json.dumps(message)}\n\n"


@router.get("/stream")
async def stream_trust_updates(
    entity_id: Optional[str] = Query(None, description="Only stream updates for this entity"),
    service: TrustService = Depends(get_service),
):
    """Stream trust updates as Server-Sent Events."""
    entity = entity_id.lower() if entity_id else None
    logger.info(f"SSE client connected for {entity or 'all entities'}")

    async def body() -> AsyncIterator[str]:
        async for message in trust_updates(service.rollup, entity):
            yield format_sse(message)

    return StreamingResponse(
        body(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
