"""Storage endpoints: boxes, available positions, blocking, occupancy."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import get_lab_scope, require_role
from app.core.tenancy import LabScope, Principal
from app.database import get_db
from app.models.enums import UserRole
from app.schemas.storage import (
    BoxCreate,
    BoxDetail,
    BoxRead,
    OccupancyStats,
    PositionBlockUpdate,
    PositionRead,
)
from app.services.storage import StorageService

router = APIRouter(prefix="/storage", tags=["storage"])

ALL_ROLES = tuple(UserRole)
WRITE_ROLES = (UserRole.LAB_ADMIN, UserRole.LAB_TECHNICIAN)
ADMIN_ROLES = (UserRole.LAB_ADMIN,)


# ── Boxes ─────────────────────────────────────────────────────────────

@router.post("/boxes", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_box(
    data: BoxCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*WRITE_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    """Create a box together with its full grid of positions."""
    svc = StorageService(db)
    box = await svc.create_box(data, scope)
    box_data = BoxRead.model_validate(box)
    box_data.total_slots = box.rows * box.columns
    return {
        "success": True,
        "data": box_data.model_dump(mode="json"),
    }


@router.get("/boxes/{box_id}", response_model=dict)
async def get_box(
    box_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*ALL_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    """Box detail with its position grid and the sample in each slot."""
    svc = StorageService(db)
    detail = await svc.get_box_detail(box_id, scope)
    return {
        "success": True,
        "data": BoxDetail.model_validate(detail).model_dump(mode="json"),
    }


# ── Positions ─────────────────────────────────────────────────────────

@router.get("/positions/available", response_model=dict)
async def available_positions(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*ALL_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
    box_id: uuid.UUID | None = Query(None),
):
    svc = StorageService(db)
    positions = await svc.find_available(scope, box_id)
    return {
        "success": True,
        "data": [PositionRead.model_validate(p).model_dump(mode="json") for p in positions],
        "meta": {"total": len(positions)},
    }


@router.put("/positions/{position_id}/block", response_model=dict)
async def block_position(
    position_id: uuid.UUID,
    data: PositionBlockUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*ADMIN_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    """Block or unblock a position for future allocation."""
    svc = StorageService(db)
    position = await svc.toggle_block(position_id, data.is_blocked, scope)
    return {
        "success": True,
        "data": PositionRead.model_validate(position).model_dump(mode="json"),
    }


# ── Occupancy ─────────────────────────────────────────────────────────

@router.get("/occupancy", response_model=dict)
async def occupancy(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*ALL_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    svc = StorageService(db)
    stats = await svc.occupancy_stats(scope)
    return {
        "success": True,
        "data": OccupancyStats(**stats).model_dump(),
    }
