"""Movement ledger: the append-only history of a sample's position and status."""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.models.base import utcnow
from app.models.enums import SampleStatus
from app.models.sample import Sample, SampleMovement
from app.models.storage import StoragePosition


class MovementLedger:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        sample: Sample,
        *,
        from_position_id: uuid.UUID | None,
        to_position_id: uuid.UUID | None,
        previous_status: SampleStatus | None,
        new_status: SampleStatus,
        performed_by: uuid.UUID,
        reason: str | None = None,
        notes: str | None = None,
    ) -> SampleMovement:
        """Add the next ledger row for ``sample`` to the current transaction.

        ``sequence`` is unique per sample, so two writers racing on the same
        sample cannot both commit the same step.
        """
        last = (
            await self.db.execute(
                select(func.max(SampleMovement.sequence)).where(
                    SampleMovement.sample_id == sample.id
                )
            )
        ).scalar_one()

        movement = SampleMovement(
            id=uuid.uuid4(),
            sample_id=sample.id,
            laboratory_id=sample.laboratory_id,
            sequence=(last or 0) + 1,
            from_position_id=from_position_id,
            to_position_id=to_position_id,
            previous_status=previous_status,
            new_status=new_status,
            performed_by=performed_by,
            reason=reason,
            notes=notes,
            performed_at=utcnow(),
        )
        self.db.add(movement)
        await self.db.flush()
        return movement

    async def history(self, sample_id: uuid.UUID) -> list[dict]:
        """Ledger rows for a sample, newest first, with position labels."""
        from_pos = aliased(StoragePosition)
        to_pos = aliased(StoragePosition)
        result = await self.db.execute(
            select(
                SampleMovement,
                from_pos.position_label.label("from_position_label"),
                to_pos.position_label.label("to_position_label"),
            )
            .outerjoin(from_pos, SampleMovement.from_position_id == from_pos.id)
            .outerjoin(to_pos, SampleMovement.to_position_id == to_pos.id)
            .where(SampleMovement.sample_id == sample_id)
            .order_by(
                SampleMovement.performed_at.desc(),
                SampleMovement.sequence.desc(),
            )
        )
        return [
            {
                **self._movement_dict(movement),
                "from_position_label": from_label,
                "to_position_label": to_label,
            }
            for movement, from_label, to_label in result.all()
        ]

    @staticmethod
    def _movement_dict(movement: SampleMovement) -> dict:
        return {
            "id": movement.id,
            "sample_id": movement.sample_id,
            "laboratory_id": movement.laboratory_id,
            "sequence": movement.sequence,
            "from_position_id": movement.from_position_id,
            "to_position_id": movement.to_position_id,
            "previous_status": movement.previous_status,
            "new_status": movement.new_status,
            "performed_by": movement.performed_by,
            "reason": movement.reason,
            "notes": movement.notes,
            "performed_at": movement.performed_at,
        }
