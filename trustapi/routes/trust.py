"""Trust score query routes.

Route ordering: the literal ``/trust/entities`` board comes before the
parameterized ``/{entity_id}`` paths.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from trustcore.rollup.service import BoardEntry
from trustcore.service import TrustService
from trustcore.storage.serialization import composite_to_dict, snapshot_to_dict
from trustapi.deps import get_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trust/entities", tags=["trust"])


def _not_analyzed(entity_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"status": "not_yet_analyzed", "entity_id": entity_id},
    )


def _board_row(entry: BoardEntry) -> dict[str, Any]:
    composite = entry.composite
    return {
        "entity_id": entry.entity_id,
        "cycle_id": composite.cycle_id,
        "overall": composite.overall,
        "grade": composite.grade,
        "confidence": composite.confidence,
        "low_confidence": composite.provenance_summary.low_confidence,
        "previous_overall": entry.previous_overall,
        "delta": entry.delta,
        "volatility": entry.volatility,
        "risk_level": entry.risk_level,
    }


@router.get("")
async def list_entities(service: TrustService = Depends(get_service)):
    """Latest score for every scored entity, highest risk first, then lowest overall score."""
    entries = service.rollup.list_latest()
    scored = {entry.entity_id for entry in entries}
    pending = [e.entity_id for e in service.runner.entities if e.entity_id not in scored]
    return {
        "count": len(entries),
        "entities": [_board_row(entry) for entry in entries],
        "not_yet_analyzed": pending,
    }


@router.get("/{entity_id}")
async def get_entity_score(
    entity_id: str = Path(..., description="Entity identifier, e.g. stake.com"),
    service: TrustService = Depends(get_service),
):
    """Latest composite score for an entity."""
    entity_id = entity_id.lower()
    composite = await service.rollup.get_latest_score(entity_id)
    if composite is None:
        raise _not_analyzed(entity_id)
    return composite_to_dict(composite)


@router.get("/{entity_id}/cycles/{cycle_id}")
async def get_entity_score_at_cycle(
    entity_id: str = Path(..., description="Entity identifier"),
    cycle_id: int = Path(..., ge=1, description="Scoring cycle id"),
    service: TrustService = Depends(get_service),
):
    """Composite score committed for an entity in ``cycle_id``.

    404s distinguish an entity never scored (``not_yet_analyzed``) from a
    scored entity with no snapshot in that cycle (``cycle_not_found``).
    """
    entity_id = entity_id.lower()
    composite = await service.rollup.get_score_at_cycle(entity_id, cycle_id)
    if composite is None:
        if await service.rollup.get_latest_score(entity_id) is None:
            raise _not_analyzed(entity_id)
        raise HTTPException(
            status_code=404,
            detail={"status": "cycle_not_found", "entity_id": entity_id, "cycle_id": cycle_id},
        )
    return composite_to_dict(composite)


@router.get("/{entity_id}/history")
async def get_entity_history(
    entity_id: str = Path(..., description="Entity identifier"),
    limit: int = Query(50, ge=1, le=500, description="Max snapshots to return"),
    service: TrustService = Depends(get_service),
):
    """Most recent snapshots for an entity, newest first."""
    entity_id = entity_id.lower()
    snapshots = await service.rollup.get_history(entity_id, limit=limit)
    return {
        "entity_id": entity_id,
        "count": len(snapshots),
        "snapshots": [snapshot_to_dict(s) for s in snapshots],
    }
