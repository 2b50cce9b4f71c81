"""Sample lifecycle service: registration, moves, status changes, deletion."""

import logging
import math
import uuid
from datetime import timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.core.tenancy import LabScope
from app.database import atomic
from app.models.base import utcnow
from app.models.enums import AuditAction, SampleStatus
from app.models.laboratory import Laboratory
from app.models.sample import Sample, SampleType
from app.models.storage import StoragePosition
from app.schemas.sample import (
    SampleCreate,
    SampleMove,
    SampleQuery,
    SampleStatusUpdate,
    SampleUpdate,
)
from app.services.audit import AuditService
from app.services.ledger import MovementLedger
from app.services.storage import StorageService

logger = logging.getLogger(__name__)

# Valid status transitions
VALID_TRANSITIONS: dict[SampleStatus, set[SampleStatus]] = {
    SampleStatus.COLLECTED: {
        SampleStatus.STORED, SampleStatus.IN_TRANSIT,
        SampleStatus.DISCARDED, SampleStatus.ARCHIVED,
    },
    SampleStatus.STORED: {
        SampleStatus.STORED, SampleStatus.IN_TRANSIT,
        SampleStatus.DISCARDED, SampleStatus.ARCHIVED,
    },
    SampleStatus.IN_TRANSIT: {
        SampleStatus.STORED, SampleStatus.DISCARDED, SampleStatus.ARCHIVED,
    },
    SampleStatus.DISCARDED: set(),
    SampleStatus.ARCHIVED: set(),
}

TERMINAL_STATUSES = (SampleStatus.DISCARDED, SampleStatus.ARCHIVED)

UPDATABLE_FIELDS = ("external_id", "volume_ml", "expiration_date", "notes")


class SampleService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.storage = StorageService(db)
        self.ledger = MovementLedger(db)
        self.audit = AuditService(db)

    # ── Registration ──────────────────────────────────────────────────

    async def register_sample(self, data: SampleCreate, scope: LabScope) -> Sample:
        laboratory_id = scope.require_laboratory()

        async with atomic(self.db):
            lab = (
                await self.db.execute(
                    select(Laboratory).where(
                        Laboratory.id == laboratory_id,
                        Laboratory.is_active == True,  # noqa: E712
                    )
                )
            ).scalar_one_or_none()
            if lab is None:
                raise NotFoundError(f"Laboratory with ID {laboratory_id} not found.")

            # Soft-deleted samples keep their barcode.
            duplicate = await self.find_by_barcode(data.barcode, include_deleted=True)
            if duplicate is not None:
                raise ConflictError(f"Sample with barcode {data.barcode} already exists.")

            sample_type = (
                await self.db.execute(
                    select(SampleType).where(
                        SampleType.id == data.sample_type_id,
                        SampleType.is_active == True,  # noqa: E712
                    )
                )
            ).scalar_one_or_none()
            if sample_type is None:
                raise NotFoundError(f"Sample type with ID {data.sample_type_id} not found.")

            expiration_date = data.expiration_date
            if expiration_date is None and sample_type.default_expiration_days:
                expiration_date = data.collection_datetime.date() + timedelta(
                    days=sample_type.default_expiration_days
                )

            position = None
            if data.current_position_id is not None:
                position = await self._reserve_target(data.current_position_id, laboratory_id)

            sample = Sample(
                id=uuid.uuid4(),
                laboratory_id=laboratory_id,
                barcode=data.barcode,
                external_id=data.external_id,
                patient_code=data.patient_code,
                request_code=data.request_code,
                sample_type_id=sample_type.id,
                volume_ml=data.volume_ml,
                collection_datetime=data.collection_datetime,
                collected_by=scope.actor_id,
                expiration_date=expiration_date,
                status=SampleStatus.STORED if position else SampleStatus.COLLECTED,
                current_position_id=position.id if position else None,
                notes=data.notes,
            )
            self.db.add(sample)
            try:
                await self.db.flush()
            except IntegrityError:
                raise ConflictError(f"Sample with barcode {data.barcode} already exists.")

            await self.ledger.append(
                sample,
                from_position_id=None,
                to_position_id=sample.current_position_id,
                previous_status=None,
                new_status=sample.status,
                performed_by=scope.actor_id,
                reason="Sample registered",
            )
            self.audit.record(
                actor_id=scope.actor_id,
                laboratory_id=laboratory_id,
                entity_type="sample",
                entity_id=sample.id,
                action=AuditAction.CREATE,
                new_values={
                    "barcode": sample.barcode,
                    "status": sample.status,
                    "current_position_id": sample.current_position_id,
                },
            )

        logger.info(
            "Registered sample %s (%s) in lab %s at %s",
            sample.barcode, sample.status.value, laboratory_id,
            position.position_label if position else "no position",
        )
        return sample

    # ── Reads ─────────────────────────────────────────────────────────

    async def get_sample(self, sample_id: uuid.UUID, scope: LabScope) -> Sample:
        result = await self.db.execute(
            scope.apply(select(Sample), Sample).where(
                Sample.id == sample_id,
                Sample.is_deleted == False,  # noqa: E712
            )
        )
        sample = result.scalar_one_or_none()
        if sample is None:
            raise NotFoundError(f"Sample with ID {sample_id} not found.")
        return sample

    async def find_by_barcode(
        self, barcode: str, *, include_deleted: bool = False
    ) -> Sample | None:
        """Look up a sample by barcode across all laboratories."""
        query = select(Sample).where(Sample.barcode == barcode)
        if not include_deleted:
            query = query.where(Sample.is_deleted == False)  # noqa: E712
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_samples(self, scope: LabScope, params: SampleQuery) -> dict:
        if (
            params.collection_date_from
            and params.collection_date_to
            and params.collection_date_from > params.collection_date_to
        ):
            raise ValidationError("collection_date_from must not be after collection_date_to.")

        query = scope.apply(select(Sample), Sample).where(
            Sample.is_deleted == False  # noqa: E712
        )

        if params.search:
            pattern = f"%{params.search}%"
            query = query.where(
                or_(
                    Sample.barcode.ilike(pattern),
                    Sample.patient_code.ilike(pattern),
                    Sample.request_code.ilike(pattern),
                    Sample.external_id.ilike(pattern),
                )
            )
        if params.status:
            query = query.where(Sample.status == params.status)
        if params.sample_type_id:
            query = query.where(Sample.sample_type_id == params.sample_type_id)
        if params.collection_date_from:
            query = query.where(Sample.collection_datetime >= params.collection_date_from)
        if params.collection_date_to:
            query = query.where(Sample.collection_datetime <= params.collection_date_to)

        count_q = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_q)).scalar_one()

        query = (
            query.order_by(Sample.created_at.desc(), Sample.id.desc())
            .offset((params.page - 1) * params.limit)
            .limit(params.limit)
        )
        result = await self.db.execute(query)
        return {
            "data": list(result.scalars().all()),
            "total": total,
            "page": params.page,
            "limit": params.limit,
            "total_pages": math.ceil(total / params.limit),
        }

    async def get_history(self, sample_id: uuid.UUID, scope: LabScope) -> list[dict]:
        sample = await self.get_sample(sample_id, scope)
        return await self.ledger.history(sample.id)

    async def get_expiring_soon(
        self, scope: LabScope, within_days: int | None = None
    ) -> list[Sample]:
        if within_days is None:
            within_days = settings.EXPIRING_SOON_DEFAULT_DAYS
        today = utcnow().date()
        result = await self.db.execute(
            scope.apply(select(Sample), Sample)
            .where(
                Sample.is_deleted == False,  # noqa: E712
                Sample.status.notin_(TERMINAL_STATUSES),
                Sample.expiration_date.is_not(None),
                Sample.expiration_date >= today,
                Sample.expiration_date <= today + timedelta(days=within_days),
            )
            .order_by(Sample.expiration_date.asc(), Sample.barcode.asc())
        )
        return list(result.scalars().all())

    # ── Field updates ─────────────────────────────────────────────────

    async def update_fields(
        self, sample_id: uuid.UUID, data: SampleUpdate, scope: LabScope
    ) -> Sample:
        async with atomic(self.db):
            sample = await self._lock_sample(sample_id, scope)

            patch = {
                field: value
                for field, value in data.model_dump(exclude_unset=True).items()
                if field in UPDATABLE_FIELDS
            }
            old_values, new_values = self.audit.diff_values(
                {field: getattr(sample, field) for field in patch}, patch
            )
            for field, value in new_values.items():
                setattr(sample, field, value)

            if new_values:
                self.audit.record(
                    actor_id=scope.actor_id,
                    laboratory_id=sample.laboratory_id,
                    entity_type="sample",
                    entity_id=sample.id,
                    action=AuditAction.UPDATE,
                    old_values=old_values,
                    new_values=new_values,
                )
                await self.db.flush()
        return sample

    # ── Movement and status ───────────────────────────────────────────

    async def move(
        self, sample_id: uuid.UUID, data: SampleMove, scope: LabScope
    ) -> Sample:
        """Put a sample into ``data.to_position_id`` and mark it STORED."""
        async with atomic(self.db):
            sample = await self._lock_sample(sample_id, scope)
            self._check_transition(sample, SampleStatus.STORED)

            # Reserving first means a move onto the held position fails as occupied.
            target = await self._reserve_target(data.to_position_id, sample.laboratory_id)
            from_position_id = sample.current_position_id
            if from_position_id is not None:
                await self.storage.release(from_position_id)

            previous_status = sample.status
            sample.current_position_id = target.id
            sample.status = SampleStatus.STORED
            await self.db.flush()

            await self.ledger.append(
                sample,
                from_position_id=from_position_id,
                to_position_id=target.id,
                previous_status=previous_status,
                new_status=SampleStatus.STORED,
                performed_by=scope.actor_id,
                reason=data.reason,
                notes=data.notes,
            )
            self.audit.record(
                actor_id=scope.actor_id,
                laboratory_id=sample.laboratory_id,
                entity_type="sample",
                entity_id=sample.id,
                action=AuditAction.MOVE,
                old_values={"current_position_id": from_position_id, "status": previous_status},
                new_values={"current_position_id": target.id, "status": SampleStatus.STORED},
            )

        logger.info(
            "Moved sample %s to %s (%s -> STORED)",
            sample.barcode, target.position_label, previous_status.value,
        )
        return sample

    async def change_status(
        self, sample_id: uuid.UUID, data: SampleStatusUpdate, scope: LabScope
    ) -> Sample:
        """Change status; any status other than STORED gives up the held position."""
        async with atomic(self.db):
            sample = await self._lock_sample(sample_id, scope)
            self._check_transition(sample, data.status)

            previous_status = sample.status
            from_position_id = sample.current_position_id
            if data.status == SampleStatus.STORED:
                if from_position_id is None:
                    raise InvalidStateError(
                        "Sample has no storage position; use move to store it."
                    )
            elif from_position_id is not None:
                await self.storage.release(from_position_id)
                sample.current_position_id = None

            sample.status = data.status
            await self.db.flush()

            await self.ledger.append(
                sample,
                from_position_id=from_position_id,
                to_position_id=sample.current_position_id,
                previous_status=previous_status,
                new_status=data.status,
                performed_by=scope.actor_id,
                reason=data.reason,
                notes=data.notes,
            )
            self.audit.record(
                actor_id=scope.actor_id,
                laboratory_id=sample.laboratory_id,
                entity_type="sample",
                entity_id=sample.id,
                action=AuditAction.STATUS_CHANGE,
                old_values={"status": previous_status, "current_position_id": from_position_id},
                new_values={"status": data.status, "current_position_id": sample.current_position_id},
            )

        logger.info(
            "Sample %s status %s -> %s",
            sample.barcode, previous_status.value, data.status.value,
        )
        return sample

    async def soft_delete(self, sample_id: uuid.UUID, scope: LabScope) -> Sample:
        async with atomic(self.db):
            sample = await self._lock_sample(sample_id, scope)

            from_position_id = sample.current_position_id
            if from_position_id is not None:
                await self.storage.release(from_position_id)
                sample.current_position_id = None

            sample.is_deleted = True
            sample.deleted_at = utcnow()
            await self.db.flush()

            await self.ledger.append(
                sample,
                from_position_id=from_position_id,
                to_position_id=None,
                previous_status=sample.status,
                new_status=sample.status,
                performed_by=scope.actor_id,
                reason="Sample deleted",
            )
            self.audit.record(
                actor_id=scope.actor_id,
                laboratory_id=sample.laboratory_id,
                entity_type="sample",
                entity_id=sample.id,
                action=AuditAction.DELETE,
                old_values={"current_position_id": from_position_id},
            )

        logger.info("Deleted sample %s", sample.barcode)
        return sample

    # ── Private helpers ───────────────────────────────────────────────

    async def _lock_sample(self, sample_id: uuid.UUID, scope: LabScope) -> Sample:
        """Re-read the sample under a row lock (a no-op on SQLite)."""
        result = await self.db.execute(
            scope.apply(select(Sample), Sample)
            .where(
                Sample.id == sample_id,
                Sample.is_deleted == False,  # noqa: E712
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        sample = result.scalar_one_or_none()
        if sample is None:
            raise NotFoundError(f"Sample with ID {sample_id} not found.")
        return sample

    async def _reserve_target(
        self, position_id: uuid.UUID, laboratory_id: uuid.UUID
    ) -> StoragePosition:
        # A position missing from the sample's lab is as unavailable as an occupied one.
        try:
            return await self.storage.reserve(position_id, laboratory_id)
        except NotFoundError:
            raise InvalidStateError("Target storage position is not available.")

    def _check_transition(self, sample: Sample, new_status: SampleStatus) -> None:
        allowed = VALID_TRANSITIONS.get(sample.status, set())
        if new_status in allowed:
            return
        message = f"Cannot transition from {sample.status.value} to {new_status.value}."
        if settings.SAMPLE_STRICT_TRANSITIONS:
            raise InvalidStateError(message)
        logger.warning("Sample %s: %s Allowed in permissive mode.", sample.barcode, message)
