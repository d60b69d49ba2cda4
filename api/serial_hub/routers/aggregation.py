# serial_hub/routers/aggregation.py
"""
Aggregation Router - containers of previously allocated serials.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from serial_hub.database import get_session
from serial_hub.models import (
    ContainerIn, ContainerCreatedOut, ContainerOut, ContainerPage, ContainerSummary, Pagination,
)
from serial_hub.services.aggregation import ContainerCoordinator

router = APIRouter(prefix="/aggregation", tags=["Aggregation"])


def get_coordinator(request: Request, db: AsyncSession = Depends(get_session)) -> ContainerCoordinator:
    return ContainerCoordinator(db, request.app.state.serial_client)


@router.post("/aggregate", status_code=201, response_model=ContainerCreatedOut)
async def aggregate(payload: ContainerIn, coordinator: ContainerCoordinator = Depends(get_coordinator)):
    container = await coordinator.create(payload.container_id, payload.members)
    return ContainerCreatedOut(
        container_id=container.container_id,
        member_count=container.member_count,
        created_at=container.created_at,
    )


@router.get("/containers", response_model=ContainerPage)
async def list_containers(
    page: str = Query("1"),
    page_size: str = Query("10", alias="pageSize"),
    coordinator: ContainerCoordinator = Depends(get_coordinator),
):
    # strings on purpose: junk values fall back to defaults instead of failing
    result = await coordinator.list(page, page_size)
    return ContainerPage(
        containers=[ContainerSummary.model_validate(c) for c in result["items"]],
        pagination=Pagination(
            page=result["page"],
            page_size=result["page_size"],
            total=result["total"],
            pages=result["pages"],
        ),
    )


@router.get("/containers/{container_id}", response_model=ContainerOut)
async def get_container(container_id: str, coordinator: ContainerCoordinator = Depends(get_coordinator)):
    return ContainerOut.model_validate(await coordinator.get(container_id))
