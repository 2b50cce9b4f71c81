"""Storage schemas: Box, position grid, availability and occupancy."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from app.config import settings
from app.models.enums import BoxType

# Rows x columns of the standard formats.
BOX_TYPE_DIMENSIONS: dict[BoxType, tuple[int, int]] = {
    BoxType.CRYO_81: (9, 9),
    BoxType.CRYO_100: (10, 10),
    BoxType.RACK_96: (8, 12),
}


# --- Box ---

class BoxCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=100)
    shelf_id: uuid.UUID | None = None
    box_type: BoxType = BoxType.CRYO_81
    rows: int | None = Field(default=None, ge=1)
    columns: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _dimensions_match_type(self) -> "BoxCreate":
        """Standard box types fix their grid; only CUSTOM boxes choose one."""
        fixed = BOX_TYPE_DIMENSIONS.get(self.box_type)
        if fixed is None:
            self.rows = self.rows or settings.DEFAULT_BOX_ROWS
            self.columns = self.columns or settings.DEFAULT_BOX_COLUMNS
            return self
        rows, columns = self.rows or fixed[0], self.columns or fixed[1]
        if (rows, columns) != fixed:
            raise ValueError(
                f"A {self.box_type.value} box is {fixed[0]}x{fixed[1]}; "
                f"use box_type custom for a {rows}x{columns} grid."
            )
        self.rows, self.columns = rows, columns
        return self


class BoxRead(BaseModel):
    id: uuid.UUID
    laboratory_id: uuid.UUID
    shelf_id: uuid.UUID | None
    code: str
    name: str
    box_type: BoxType
    rows: int
    columns: int
    is_active: bool
    created_at: datetime
    updated_at: datetime
    # Computed
    occupied_count: int = 0
    total_slots: int = 0

    model_config = {"from_attributes": True}


# --- StoragePosition ---

class PositionRead(BaseModel):
    id: uuid.UUID
    box_id: uuid.UUID
    laboratory_id: uuid.UUID
    row_number: int
    column_number: int
    position_label: str
    is_occupied: bool
    is_blocked: bool

    model_config = {"from_attributes": True}


class PositionDetail(PositionRead):
    sample_id: uuid.UUID | None = None
    sample_barcode: str | None = None


class BoxDetail(BoxRead):
    """Box with all positions and the sample each holds."""
    positions: list[PositionDetail] = []


class PositionBlockUpdate(BaseModel):
    is_blocked: bool


# --- Occupancy ---

class OccupancyStats(BaseModel):
    total: int
    occupied: int
    blocked: int
    available: int
    percentage: int
