"""FastAPI application for platform trust scores.

Endpoints:
- GET /trust/entities - Board of latest scores, worst first
- GET /trust/entities/{entity_id} - Latest composite score for an entity
- GET /trust/entities/{entity_id}/cycles/{cycle_id} - Score as of a cycle
- GET /trust/entities/{entity_id}/history - Recent snapshots for an entity
- GET /trust/stream - Server-Sent Events feed of trust updates
- POST /trust/cycles - Trigger a manual scoring cycle
- GET /trust/cycles - Recent cycle log
- POST /trust/cycles/abort - Abort the running cycle
- GET /system/health - Store, source and cycle health

Configuration is read from the environment (see ``trustcore.config``).
No authentication (local network only).
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from trustapi import stream
from trustapi.routes import cycles, health, trust
from trustcore.config import load_config
from trustcore.service import TrustService

logger = logging.getLogger(__name__)


def create_app(service: Optional[TrustService] = None) -> FastAPI:
    """Build the API around ``service`` (or one created from the environment on startup)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        trust_service = service or TrustService(load_config())
        app.state.trust = trust_service
        app.state.started_at = time.time()
        await trust_service.start()
        try:
            yield
        finally:
            await trust_service.stop()
            app.state.trust = None

    app = FastAPI(
        title="Trust Score API",
        description="Composite trust scores for monitored gambling platforms",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.trust = None
    app.state.started_at = time.time()

    app.include_router(stream.router)
    app.include_router(trust.router)
    app.include_router(cycles.router)
    app.include_router(health.router)

    @app.exception_handler(Exception)
    async def global_exception_handler(_request, exc):
        """Global exception handler to ensure consistent error responses."""
        logger.error(f"Unhandled API error: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


app = create_app()
