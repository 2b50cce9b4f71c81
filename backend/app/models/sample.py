"""Sample type catalog, sample, and movement ledger models."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.base import (
    BaseModel,
    BaseModelNoSoftDelete,
    LaboratoryScopedMixin,
    UUIDPrimaryKeyMixin,
    utcnow,
)
from app.models.enums import SampleStatus


class SampleType(BaseModelNoSoftDelete):
    __tablename__ = "sample_type"

    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    storage_requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_expiration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true")


class Sample(LaboratoryScopedMixin, BaseModel):
    __tablename__ = "sample"

    barcode: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    patient_code: Mapped[str] = mapped_column(String(100), nullable=False)
    request_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sample_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sample_type.id"), nullable=False
    )
    volume_ml: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    collection_datetime: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    collected_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[SampleStatus] = mapped_column(nullable=False)
    # Non-null exactly while status is STORED.
    current_position_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("storage_position.id"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_sample_status", "status"),
        Index("ix_sample_type", "sample_type_id"),
        Index("ix_sample_position", "current_position_id"),
        Index("ix_sample_expiration", "expiration_date"),
    )


class SampleMovement(LaboratoryScopedMixin, UUIDPrimaryKeyMixin, Base):
    """Append-only ledger row; never updated or deleted."""

    __tablename__ = "sample_movement"

    sample_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sample.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    from_position_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("storage_position.id"), nullable=True
    )
    to_position_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("storage_position.id"), nullable=True
    )
    previous_status: Mapped[SampleStatus | None] = mapped_column(nullable=True)
    new_status: Mapped[SampleStatus] = mapped_column(nullable=False)
    performed_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("sample_id", "sequence", name="uq_movement_sample_sequence"),
        Index("ix_movement_sample", "sample_id"),
        Index("ix_movement_performed_at", "performed_at"),
    )
