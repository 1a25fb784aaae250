"""Endpoints HTTP de telemetría.

POST /api/data              → ingesta de una lectura
GET  /api/data/{device_id}  → valor live (o "--" si está vencido)
GET  /api/history/{device_id} → ventana de histórico en memoria
POST /api/relays            → comando de control de relés
PATCH /api/settings/{device_id} → actualización de umbrales
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ...auth import require_api_key
from ...container import ServiceContainer
from ...errors import UpstreamUnavailable, ValidationError
from ...schemas import (
    DeviceSettingsOut,
    HistoryResponse,
    IngestResult,
    ReadingResponse,
    RelayCommandResult,
    SettingsPatchIn,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["telemetry"])


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "error": message})


async def _json_body(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


@router.post(
    "/data",
    response_model=IngestResult,
    dependencies=[Depends(require_api_key)],
)
async def ingest_data(request: Request, container: ServiceContainer = Depends(get_container)):
    body = await _json_body(request)
    if body is None:
        return _error(400, "invalid JSON body")

    try:
        outcome = await container.pipeline.ingest(body, transport="http")
    except ValidationError as e:
        logger.warning("[HTTP] Rejected reading: %s", e)
        return _error(400, str(e))

    return IngestResult(
        stored=outcome.reading.to_dict(),
        record_id=outcome.record_id,
        persisted=outcome.persisted,
        alert=outcome.transition.value,
    )


@router.get("/data/{device_id}", response_model=ReadingResponse)
def get_live_data(device_id: str, container: ServiceContainer = Depends(get_container)):
    reading = container.pipeline.get_live(device_id)
    if reading is None:
        return ReadingResponse(status="no_data", data="--")
    return ReadingResponse(status="ok", data=reading.to_dict())


@router.get("/history/{device_id}", response_model=HistoryResponse)
def get_history(device_id: str, container: ServiceContainer = Depends(get_container)):
    history = container.pipeline.get_history(device_id)
    if not history:
        return HistoryResponse(status="no_data", data=[])
    return HistoryResponse(status="ok", data=[r.to_dict() for r in history])


@router.post(
    "/relays",
    response_model=RelayCommandResult,
    dependencies=[Depends(require_api_key)],
)
async def post_relays(request: Request, container: ServiceContainer = Depends(get_container)):
    body = await _json_body(request)
    if body is None:
        return _error(400, "invalid JSON body")

    try:
        device_id, record_id, relays = await container.pipeline.record_relay_command(body)
    except ValidationError as e:
        return _error(400, str(e))
    except UpstreamUnavailable as e:
        logger.error("[HTTP] Relay command not stored: %s", e)
        raise HTTPException(status_code=503, detail="durable store unavailable")

    return RelayCommandResult(device_id=device_id, record_id=record_id, relays=relays)


@router.patch(
    "/settings/{device_id}",
    response_model=DeviceSettingsOut,
    dependencies=[Depends(require_api_key)],
)
async def patch_settings(
    device_id: str,
    patch: SettingsPatchIn,
    container: ServiceContainer = Depends(get_container),
):
    try:
        settings = await container.pipeline.update_settings(device_id, patch.to_fields())
    except ValidationError as e:
        return _error(400, str(e))
    except UpstreamUnavailable as e:
        logger.error("[HTTP] Settings update failed device=%s: %s", device_id, e)
        raise HTTPException(status_code=503, detail="durable store unavailable")

    return DeviceSettingsOut(
        device_id=device_id,
        lower_bound_line1=settings.lower_bound_line1,
        lower_bound_line2=settings.lower_bound_line2,
        units_per_line1=settings.units_per_line1,
        units_per_line2=settings.units_per_line2,
    )
