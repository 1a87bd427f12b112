"""FastAPI application exposing liveness and sync status."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse


def create_app(lifespan: Any = None) -> FastAPI:
    """Create the health-check application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to start and stop the sync scheduler.

    Returns:
        FastAPI app with GET /, GET /health and GET /status.
    """
    app = FastAPI(title="OHLCV Sync", lifespan=lifespan)
    app.state.scheduler = None

    @app.get("/", response_class=PlainTextResponse)
    @app.get("/health", response_class=PlainTextResponse)
    async def health() -> str:
        return "OK"

    @app.get("/status")
    async def status(request: Request) -> JSONResponse:
        scheduler = request.app.state.scheduler
        if scheduler is None:
            return JSONResponse(content={"running": False, "syncing": False})
        return JSONResponse(content=scheduler.status())

    return app
