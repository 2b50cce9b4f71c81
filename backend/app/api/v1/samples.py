"""Sample endpoints: registration, lookup, moves, status changes, history."""

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import get_lab_scope, require_role
from app.core.exceptions import NotFoundError
from app.core.tenancy import LabScope, Principal
from app.database import get_db
from app.models.enums import SampleStatus, UserRole
from app.schemas import PaginationMeta
from app.schemas.sample import (
    MovementRead,
    SampleCreate,
    SampleMove,
    SampleQuery,
    SampleRead,
    SampleStatusUpdate,
    SampleUpdate,
)
from app.services.sample import SampleService

router = APIRouter(prefix="/samples", tags=["samples"])

ALL_ROLES = tuple(UserRole)
WRITE_ROLES = (UserRole.LAB_ADMIN, UserRole.LAB_TECHNICIAN)
ADMIN_ROLES = (UserRole.LAB_ADMIN,)


def _sample_json(sample) -> dict:
    return SampleRead.model_validate(sample).model_dump(mode="json")


@router.get("", response_model=dict)
async def list_samples(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*ALL_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = None,
    sample_status: SampleStatus | None = Query(None, alias="status"),
    sample_type_id: uuid.UUID | None = None,
    collection_date_from: datetime | None = None,
    collection_date_to: datetime | None = None,
):
    """List samples with pagination, search, and filters."""
    params = SampleQuery(
        page=page, limit=limit, search=search, status=sample_status,
        sample_type_id=sample_type_id,
        collection_date_from=collection_date_from,
        collection_date_to=collection_date_to,
    )
    svc = SampleService(db)
    result = await svc.list_samples(scope, params)
    return {
        "success": True,
        "data": [_sample_json(s) for s in result["data"]],
        "meta": PaginationMeta(
            page=result["page"],
            limit=result["limit"],
            total=result["total"],
            total_pages=result["total_pages"],
        ).model_dump(),
    }


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def register_sample(
    data: SampleCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*WRITE_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    """Register a new sample, optionally straight into a storage position."""
    svc = SampleService(db)
    sample = await svc.register_sample(data, scope)
    return {"success": True, "data": _sample_json(sample)}


# Fixed paths MUST come before /{sample_id} so FastAPI does not try to
# parse "expiring" or "barcode" as a UUID.

@router.get("/expiring", response_model=dict)
async def expiring_samples(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*ALL_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
    days: int | None = Query(None, ge=0, le=3650),
):
    svc = SampleService(db)
    samples = await svc.get_expiring_soon(scope, days)
    return {
        "success": True,
        "data": [_sample_json(s) for s in samples],
        "meta": {"total": len(samples)},
    }


@router.get("/barcode/{barcode}", response_model=dict)
async def get_sample_by_barcode(
    barcode: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*ALL_ROLES))],
):
    """Barcode lookup. Barcodes are global, so this is not laboratory-scoped."""
    svc = SampleService(db)
    sample = await svc.find_by_barcode(barcode)
    if sample is None:
        raise NotFoundError(f"Sample with barcode {barcode} not found.")
    return {"success": True, "data": _sample_json(sample)}


@router.get("/{sample_id}", response_model=dict)
async def get_sample(
    sample_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*ALL_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    svc = SampleService(db)
    sample = await svc.get_sample(sample_id, scope)
    return {"success": True, "data": _sample_json(sample)}


@router.get("/{sample_id}/history", response_model=dict)
async def get_sample_history(
    sample_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*ALL_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    """Movement ledger for a sample, newest first."""
    svc = SampleService(db)
    rows = await svc.get_history(sample_id, scope)
    return {
        "success": True,
        "data": [MovementRead.model_validate(r).model_dump(mode="json") for r in rows],
        "meta": {"total": len(rows)},
    }


@router.put("/{sample_id}", response_model=dict)
async def update_sample(
    sample_id: uuid.UUID,
    data: SampleUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*WRITE_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    svc = SampleService(db)
    sample = await svc.update_fields(sample_id, data, scope)
    return {"success": True, "data": _sample_json(sample)}


@router.post("/{sample_id}/move", response_model=dict)
async def move_sample(
    sample_id: uuid.UUID,
    data: SampleMove,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*WRITE_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    """Move a sample into a free position; the sample becomes STORED."""
    svc = SampleService(db)
    sample = await svc.move(sample_id, data, scope)
    return {"success": True, "data": _sample_json(sample)}


@router.post("/{sample_id}/status", response_model=dict)
async def change_sample_status(
    sample_id: uuid.UUID,
    data: SampleStatusUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*WRITE_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    svc = SampleService(db)
    sample = await svc.change_status(sample_id, data, scope)
    return {"success": True, "data": _sample_json(sample)}


@router.delete("/{sample_id}", response_model=dict)
async def delete_sample(
    sample_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[Principal, Depends(require_role(*ADMIN_ROLES))],
    scope: Annotated[LabScope, Depends(get_lab_scope)],
):
    """Soft-delete a sample and free its position."""
    svc = SampleService(db)
    sample = await svc.soft_delete(sample_id, scope)
    return {"success": True, "data": {"id": str(sample.id), "deleted": True}}
