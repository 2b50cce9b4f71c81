"""Base model mixin with UUID primary key, timestamps, and soft delete."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Adds created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class SoftDeleteMixin:
    """Adds is_deleted and deleted_at columns."""

    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default="false",
        nullable=False,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class UUIDPrimaryKeyMixin:
    """Adds a UUID v4 primary key."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )


class LaboratoryScopedMixin:
    """Adds the tenant column every laboratory-owned row carries."""

    laboratory_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("laboratory.id"), nullable=False, index=True
    )


class BaseModel(UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Full base model with UUID PK, timestamps, and soft delete.

    Use for most entities.
    """

    __abstract__ = True


class BaseModelNoSoftDelete(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Base model without soft delete.

    Use for catalog, hierarchy and ledger tables that are never soft-deleted.
    """

    __abstract__ = True
