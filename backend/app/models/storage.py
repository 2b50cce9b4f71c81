"""Storage hierarchy: StorageRoom, Freezer, Shelf, Box, and the Box position grid."""

import uuid

from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModelNoSoftDelete, LaboratoryScopedMixin
from app.models.enums import BoxType


class StorageRoom(LaboratoryScopedMixin, BaseModelNoSoftDelete):
    __tablename__ = "storage_room"

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true")

    __table_args__ = (
        UniqueConstraint("laboratory_id", "code", name="uq_storage_room_lab_code"),
    )


class Freezer(LaboratoryScopedMixin, BaseModelNoSoftDelete):
    __tablename__ = "freezer"

    storage_room_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("storage_room.id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    temperature_c: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true")

    __table_args__ = (
        UniqueConstraint("laboratory_id", "code", name="uq_freezer_lab_code"),
        Index("ix_freezer_room", "storage_room_id"),
    )


class Shelf(LaboratoryScopedMixin, BaseModelNoSoftDelete):
    __tablename__ = "shelf"

    freezer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("freezer.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    position_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true")

    __table_args__ = (
        Index("ix_shelf_freezer", "freezer_id"),
    )


class Box(LaboratoryScopedMixin, BaseModelNoSoftDelete):
    __tablename__ = "box"

    shelf_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("shelf.id"), nullable=True
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    box_type: Mapped[BoxType] = mapped_column(
        default=BoxType.CRYO_81, server_default=BoxType.CRYO_81.name
    )
    # Fixed at creation; the position grid is built from these.
    rows: Mapped[int] = mapped_column(Integer, nullable=False)
    columns: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true")

    __table_args__ = (
        UniqueConstraint("laboratory_id", "code", name="uq_box_lab_code"),
        Index("ix_box_shelf", "shelf_id"),
    )


class StoragePosition(LaboratoryScopedMixin, BaseModelNoSoftDelete):
    __tablename__ = "storage_position"

    box_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("box.id"), nullable=False
    )
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    column_number: Mapped[int] = mapped_column(Integer, nullable=False)
    position_label: Mapped[str] = mapped_column(String(10), nullable=False)
    is_occupied: Mapped[bool] = mapped_column(
        default=False, server_default="false", nullable=False
    )
    is_blocked: Mapped[bool] = mapped_column(
        default=False, server_default="false", nullable=False
    )

    __table_args__ = (
        UniqueConstraint("box_id", "row_number", "column_number", name="uq_box_row_col"),
        Index("ix_position_box", "box_id"),
        Index("ix_position_availability", "laboratory_id", "is_occupied", "is_blocked"),
    )
