# serial_hub/routers/integration.py
"""
Integration Router - pushes opaque payloads to the external system.
"""
from __future__ import annotations
from typing import Any

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse

from serial_hub.models import PushOut
from serial_hub.services.delivery import DeliveryStatus, ExternalDelivery, FailureKind

router = APIRouter(prefix="/integration", tags=["Integration"])

# FAILED outcomes; the kinds need different remediation so they stay distinct
_FAILURE_HTTP = {
    FailureKind.rejected: 502,
    FailureKind.unreachable: 504,
    FailureKind.internal: 500,
}


@router.post("/push", response_model=PushOut, response_model_exclude_none=True)
async def push(request: Request, payload: Any = Body(None)):
    delivery: ExternalDelivery = request.app.state.delivery
    result = await delivery.push(payload)

    out = PushOut(
        status=result.status.value,
        trace_id=result.trace_id,
        upstream_status=result.upstream_status,
        error=result.error,
    )
    if result.status == DeliveryStatus.POSTED:
        return out
    return JSONResponse(
        status_code=_FAILURE_HTTP[result.failure],
        content=out.model_dump(by_alias=True, exclude_none=True),
    )
