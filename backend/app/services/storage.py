"""Storage service: box grids and position allocation (reserve, release, block)."""

import logging
import math
import uuid

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from app.core.tenancy import LabScope
from app.database import atomic
from app.models.enums import AuditAction
from app.models.sample import Sample
from app.models.storage import Box, Shelf, StoragePosition
from app.schemas.storage import BoxCreate
from app.services.audit import AuditService
from app.services.grid import build_grid

logger = logging.getLogger(__name__)


class StorageService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # ── Boxes ─────────────────────────────────────────────────────────

    async def create_box(
        self,
        data: BoxCreate,
        scope: LabScope,
    ) -> Box:
        """Create a box and its full position grid in one unit."""
        laboratory_id = scope.require_laboratory()
        cells = build_grid(data.rows, data.columns)

        async with atomic(self.db):
            existing = await self.db.execute(
                select(Box.id).where(
                    Box.laboratory_id == laboratory_id,
                    Box.code == data.code,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise ConflictError(f"Box with code {data.code} already exists.")

            if data.shelf_id is not None:
                shelf = await self.db.execute(
                    scope.apply(select(Shelf.id), Shelf).where(Shelf.id == data.shelf_id)
                )
                if shelf.scalar_one_or_none() is None:
                    raise NotFoundError(f"Shelf with ID {data.shelf_id} not found.")

            box = Box(
                id=uuid.uuid4(),
                laboratory_id=laboratory_id,
                shelf_id=data.shelf_id,
                code=data.code,
                name=data.name,
                box_type=data.box_type,
                rows=data.rows,
                columns=data.columns,
            )
            self.db.add(box)
            self.db.add_all([
                StoragePosition(
                    id=uuid.uuid4(),
                    box_id=box.id,
                    laboratory_id=laboratory_id,
                    row_number=cell.row,
                    column_number=cell.column,
                    position_label=cell.label,
                    is_occupied=False,
                    is_blocked=False,
                )
                for cell in cells
            ])
            try:
                await self.db.flush()
            except IntegrityError:
                raise ConflictError(f"Box with code {data.code} already exists.")

            self.audit.record(
                actor_id=scope.actor_id,
                laboratory_id=laboratory_id,
                entity_type="box",
                entity_id=box.id,
                action=AuditAction.CREATE,
                new_values={
                    "code": box.code,
                    "rows": box.rows,
                    "columns": box.columns,
                },
            )

        logger.info(
            "Created box %s (%dx%d, %d positions) in lab %s",
            box.code, box.rows, box.columns, len(cells), laboratory_id,
        )
        return box

    async def get_box(self, box_id: uuid.UUID, scope: LabScope) -> Box:
        result = await self.db.execute(
            scope.apply(select(Box), Box).where(Box.id == box_id)
        )
        box = result.scalar_one_or_none()
        if box is None:
            raise NotFoundError(f"Box with ID {box_id} not found.")
        return box

    async def get_box_detail(self, box_id: uuid.UUID, scope: LabScope) -> dict:
        """Box with every position (row-major) and the sample each one holds."""
        box = await self.get_box(box_id, scope)
        result = await self.db.execute(
            select(StoragePosition, Sample.id, Sample.barcode)
            .outerjoin(
                Sample,
                (Sample.current_position_id == StoragePosition.id)
                & (Sample.is_deleted == False),  # noqa: E712
            )
            .where(StoragePosition.box_id == box.id)
            .order_by(StoragePosition.row_number.asc(), StoragePosition.column_number.asc())
        )
        positions = []
        for position, sample_id, barcode in result.all():
            positions.append({
                **self._position_dict(position),
                "sample_id": sample_id,
                "sample_barcode": barcode,
            })
        return {
            **self._box_dict(box),
            "positions": positions,
            "occupied_count": sum(1 for p in positions if p["is_occupied"]),
            "total_slots": box.rows * box.columns,
        }

    # ── Position allocation ───────────────────────────────────────────

    async def find_available(
        self,
        scope: LabScope,
        box_id: uuid.UUID | None = None,
    ) -> list[StoragePosition]:
        """Free, unblocked positions ordered by box, row, column (capped)."""
        query = scope.apply(select(StoragePosition), StoragePosition).where(
            StoragePosition.is_occupied == False,  # noqa: E712
            StoragePosition.is_blocked == False,  # noqa: E712
        )
        if box_id is not None:
            query = query.where(StoragePosition.box_id == box_id)
        query = query.order_by(
            StoragePosition.box_id.asc(),
            StoragePosition.row_number.asc(),
            StoragePosition.column_number.asc(),
        ).limit(settings.AVAILABLE_POSITIONS_LIMIT)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_position(
        self, position_id: uuid.UUID, laboratory_id: uuid.UUID | None
    ) -> StoragePosition:
        query = select(StoragePosition).where(StoragePosition.id == position_id)
        if laboratory_id is not None:
            query = query.where(StoragePosition.laboratory_id == laboratory_id)
        result = await self.db.execute(query)
        position = result.scalar_one_or_none()
        if position is None:
            raise NotFoundError(f"Position with ID {position_id} not found.")
        return position

    async def reserve(
        self, position_id: uuid.UUID, laboratory_id: uuid.UUID
    ) -> StoragePosition:
        """Claim a free, unblocked position in ``laboratory_id``.

        The claim is a conditional update, so availability is re-checked at
        write time: of two transactions racing for the same position only one
        changes the row. Must run inside the caller's transaction.
        """
        result = await self.db.execute(
            update(StoragePosition)
            .where(
                StoragePosition.id == position_id,
                StoragePosition.laboratory_id == laboratory_id,
                StoragePosition.is_occupied == False,  # noqa: E712
                StoragePosition.is_blocked == False,  # noqa: E712
            )
            .values(is_occupied=True)
            .execution_options(synchronize_session=False)
        )
        position = await self.get_position(position_id, laboratory_id)
        await self.db.refresh(position)
        if result.rowcount != 1:
            if position.is_blocked:
                raise InvalidStateError(f"Position {position.position_label} is blocked.")
            raise InvalidStateError(f"Position {position.position_label} is already occupied.")
        return position

    async def release(self, position_id: uuid.UUID) -> None:
        """Mark a position free. Safe to call on a position that is already free."""
        await self.db.execute(
            update(StoragePosition)
            .where(StoragePosition.id == position_id)
            .values(is_occupied=False)
            .execution_options(synchronize_session=False)
        )
        position = await self.db.get(StoragePosition, position_id)
        if position is not None:
            await self.db.refresh(position)

    async def toggle_block(
        self,
        position_id: uuid.UUID,
        blocked: bool,
        scope: LabScope,
    ) -> StoragePosition:
        """Block or unblock a position. Blocking only prevents future allocation."""
        async with atomic(self.db):
            position = await self.get_position(position_id, scope.laboratory_id)
            previous = position.is_blocked
            if blocked and position.is_occupied:
                logger.warning(
                    "Blocking occupied position %s (%s); its sample stays in place",
                    position.position_label, position.id,
                )
            position.is_blocked = blocked
            self.audit.record(
                actor_id=scope.actor_id,
                laboratory_id=position.laboratory_id,
                entity_type="storage_position",
                entity_id=position.id,
                action=AuditAction.BLOCK,
                old_values={"is_blocked": previous},
                new_values={"is_blocked": blocked},
            )
            await self.db.flush()
        return position

    async def occupancy_stats(self, scope: LabScope) -> dict:
        """Totals across every position in the scope's laboratory."""
        query = scope.apply(
            select(
                func.count(StoragePosition.id),
                func.coalesce(func.sum(case((StoragePosition.is_occupied == True, 1), else_=0)), 0),  # noqa: E712
                func.coalesce(func.sum(case((StoragePosition.is_blocked == True, 1), else_=0)), 0),  # noqa: E712
            ),
            StoragePosition,
        )
        total, occupied, blocked = (await self.db.execute(query)).one()
        total, occupied, blocked = int(total), int(occupied), int(blocked)
        return {
            "total": total,
            "occupied": occupied,
            "blocked": blocked,
            "available": total - occupied - blocked,
            "percentage": math.floor(occupied / total * 100 + 0.5) if total > 0 else 0,
        }

    # ── Private helpers ───────────────────────────────────────────────

    def _box_dict(self, box: Box) -> dict:
        return {
            "id": box.id,
            "laboratory_id": box.laboratory_id,
            "shelf_id": box.shelf_id,
            "code": box.code,
            "name": box.name,
            "box_type": box.box_type,
            "rows": box.rows,
            "columns": box.columns,
            "is_active": box.is_active,
            "created_at": box.created_at,
            "updated_at": box.updated_at,
        }

    def _position_dict(self, position: StoragePosition) -> dict:
        return {
            "id": position.id,
            "box_id": position.box_id,
            "laboratory_id": position.laboratory_id,
            "row_number": position.row_number,
            "column_number": position.column_number,
            "position_label": position.position_label,
            "is_occupied": position.is_occupied,
            "is_blocked": position.is_blocked,
        }
