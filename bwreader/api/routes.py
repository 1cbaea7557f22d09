"""REST route handlers.

Dependencies are read from ``request.app.state`` (see ``create_app``).
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError

from bwreader.api.schemas import (
    ErrorResponse,
    HealthResponse,
    SecretsResponse,
    TriggerSyncRequest,
    TriggerSyncResponse,
)
from bwreader.reader import STANDALONE_ERROR, SecretReader
from bwreader.sync import SyncTrigger

router = APIRouter()
metrics_router = APIRouter()


def _requested_names(body: bytes) -> list[str] | None:
    """Parse the optional trigger body; anything unparseable means "all names"."""
    if not body.strip():
        return None
    try:
        return TriggerSyncRequest.model_validate_json(body).secret_names
    except ValidationError:
        return None


@router.get("/secrets", response_model=SecretsResponse)
async def list_secrets(request: Request) -> JSONResponse:
    """Return a freshly built snapshot of every configured secret."""
    reader: SecretReader = request.app.state.reader
    snapshot = await reader.read_snapshot(request.app.state.config.secret_names)
    return JSONResponse(content=snapshot.to_envelope())


@router.post(
    "/trigger-sync",
    response_model=TriggerSyncResponse,
    responses={
        206: {"model": TriggerSyncResponse, "description": "Some names failed"},
        503: {"model": ErrorResponse, "description": "Running in standalone mode"},
    },
)
async def trigger_sync(request: Request) -> JSONResponse:
    """Force a re-sync of the requested (default: all configured) secrets."""
    trigger: SyncTrigger = request.app.state.sync_trigger
    if not trigger.available:
        return JSONResponse(
            status_code=503,
            content=ErrorResponse(error="STANDALONE_MODE", detail=STANDALONE_ERROR).model_dump(),
        )

    result = await trigger.trigger(_requested_names(await request.body()))
    if result.partial:
        response = TriggerSyncResponse(successes=result.successes, errors=result.errors)
        return JSONResponse(status_code=206, content=response.model_dump(by_alias=True, exclude_none=True))

    response = TriggerSyncResponse(
        message="Sync triggered successfully",
        successes=result.successes,
        errors=[],
    )
    return JSONResponse(status_code=200, content=response.model_dump(by_alias=True))


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    return HealthResponse(status="healthy", version=request.app.state.config.app_version)


@metrics_router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
