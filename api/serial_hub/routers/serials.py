# serial_hub/routers/serials.py
"""
Serialization Router - allocation, validation and status lifecycle.
"""
from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from serial_hub.database import get_session
from serial_hub.errors import NotFound
from serial_hub.models import (
    AllocateIn, AllocateOut, ValidateOut, StatusIn, StatusOut, StatsOut, SerialOut,
)
from serial_hub.services.serials import SerialAllocator

router = APIRouter(prefix="/serials", tags=["Serials"])


def get_allocator(db: AsyncSession = Depends(get_session)) -> SerialAllocator:
    return SerialAllocator(db)


@router.post("/generate", response_model=AllocateOut)
async def generate_serial(payload: AllocateIn, allocator: SerialAllocator = Depends(get_allocator)):
    record = await allocator.allocate(
        payload.product_code,
        payload.batch,
        payload.manufacture_date,
        payload.expiry_date,
    )
    return AllocateOut(serial=record.serial, label_payload=record.label_payload)


@router.get("/validate/{serial}", response_model=ValidateOut)
async def validate_serial(serial: str, allocator: SerialAllocator = Depends(get_allocator)):
    """Existence check used by aggregation and by scanners."""
    try:
        record = await allocator.validate(serial)
    except NotFound as e:
        return JSONResponse(status_code=404, content={"valid": False, **e.to_dict()})
    return ValidateOut.model_validate(record)


@router.patch("/status/{serial}", response_model=StatusOut)
async def update_status(serial: str, payload: StatusIn, allocator: SerialAllocator = Depends(get_allocator)):
    record = await allocator.transition(serial, payload.status)
    return StatusOut(serial=record.serial, status=record.status)


@router.get("/stats", response_model=StatsOut)
async def serial_stats(allocator: SerialAllocator = Depends(get_allocator)):
    return await allocator.stats()


@router.get("/all", response_model=List[SerialOut])
async def all_serials(allocator: SerialAllocator = Depends(get_allocator)):
    return await allocator.list_all()
