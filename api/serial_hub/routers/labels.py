# serial_hub/routers/labels.py
"""
Labels Router - print registration and scan handling.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from serial_hub.database import get_session
from serial_hub.models import LabelIn, LabelOut, StatusOut
from serial_hub.services.labels import LabelService

router = APIRouter(prefix="/labels", tags=["Labels"])


def get_label_service(request: Request, db: AsyncSession = Depends(get_session)) -> LabelService:
    state = request.app.state
    return LabelService(db, state.serial_client, state.status_updater)


@router.post("/print", response_model=LabelOut)
async def print_label(payload: LabelIn, service: LabelService = Depends(get_label_service)):
    """
    Register a printed label.

    The serial is moved to PRINTED in the background; a failure there is
    logged and does not fail the print.
    """
    label = await service.print_label(payload.label_payload)
    return LabelOut.model_validate(label)


@router.post("/scan", response_model=StatusOut)
async def scan_label(payload: LabelIn, service: LabelService = Depends(get_label_service)):
    body = await service.scan_label(payload.label_payload)
    return StatusOut(serial=body.get("serial"), status=body.get("status"))


@router.get("/{serial}", response_model=LabelOut)
async def get_label(serial: str, service: LabelService = Depends(get_label_service)):
    return LabelOut.model_validate(await service.get_label(serial))
