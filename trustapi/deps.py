"""Request dependencies shared by the route modules."""

from __future__ import annotations

from fastapi import HTTPException, Request

from trustcore.service import TrustService


def get_service(request: Request) -> TrustService:
    service = getattr(request.app.state, "trust", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Trust service not initialized")
    return service
