"""FastAPI application factory for bitwarden-reader.

Usage::

    from bwreader.api.app import create_app

    app = create_app(
        hub=hub,
        reader=reader,
        sync_trigger=sync_trigger,
        config=config,
    )

The factory is used by both the production bootstrap (``bwreader.app``)
and the tests.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bwreader.api.routes import metrics_router, router
from bwreader.api.schemas import ErrorResponse
from bwreader.api.websocket import ws_router
from bwreader.hub import BroadcastHub
from bwreader.models.config import BwReaderConfig
from bwreader.reader import SecretReader
from bwreader.sync import SyncTrigger

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(
    hub: BroadcastHub,
    reader: SecretReader,
    sync_trigger: SyncTrigger,
    config: BwReaderConfig | None = None,
) -> FastAPI:
    """Create and configure the bitwarden-reader FastAPI application.

    Args:
        hub:          BroadcastHub serving the ``/ws`` push channel.
        reader:       SecretReader used by the pull endpoint.
        sync_trigger: SyncTrigger used by the trigger endpoint.
        config:       BwReaderConfig; secret names, version and hub tuning.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from bwreader import __version__

    config = config or BwReaderConfig()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        # The bootstrap starts the hub itself; this covers servers and test
        # clients that only run the ASGI app.
        started_here = not hub.running
        if started_here:
            await hub.start()
        try:
            yield
        finally:
            if started_here:
                await hub.stop()

    app = FastAPI(
        title="bitwarden-reader",
        summary="Bitwarden secret sync status",
        version=__version__,
        description=(
            "Shows whether Bitwarden secrets mirrored into Kubernetes are in "
            "sync and lets an operator force a re-sync."
        ),
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan,
    )

    # Store dependencies in app.state so route handlers can access them
    # without module-level globals.
    app.state.hub = hub
    app.state.reader = reader
    app.state.sync_trigger = sync_trigger
    app.state.config = config
    app.state.hub_config = config.hub

    app.include_router(router, prefix=_API_PREFIX)
    app.include_router(ws_router)
    app.include_router(metrics_router)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Map Pydantic validation errors to our error envelope."""
        errors = exc.errors()
        first_msg = str(errors[0].get("msg", "")) if errors else ""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=first_msg).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
