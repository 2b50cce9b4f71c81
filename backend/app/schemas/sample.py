"""Sample, movement, and listing request/response schemas."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from app.models.enums import SampleStatus


# --- Sample ---

class SampleCreate(BaseModel):
    barcode: str = Field(min_length=1, max_length=100)
    external_id: str | None = Field(default=None, max_length=100)
    patient_code: str = Field(min_length=1, max_length=100)
    request_code: str | None = Field(default=None, max_length=100)
    sample_type_id: uuid.UUID
    volume_ml: Decimal | None = Field(default=None, ge=0)
    collection_datetime: datetime
    current_position_id: uuid.UUID | None = None
    expiration_date: date | None = None
    notes: str | None = None


class SampleUpdate(BaseModel):
    """Only non-identity, non-status, non-position fields can be patched."""

    external_id: str | None = Field(default=None, max_length=100)
    volume_ml: Decimal | None = Field(default=None, ge=0)
    expiration_date: date | None = None
    notes: str | None = None

    model_config = {"extra": "forbid"}


class SampleMove(BaseModel):
    to_position_id: uuid.UUID
    reason: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class SampleStatusUpdate(BaseModel):
    status: SampleStatus
    reason: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class SampleQuery(BaseModel):
    search: str | None = None
    status: SampleStatus | None = None
    sample_type_id: uuid.UUID | None = None
    collection_date_from: datetime | None = None
    collection_date_to: datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class SampleRead(BaseModel):
    id: uuid.UUID
    barcode: str
    external_id: str | None
    patient_code: str
    request_code: str | None
    sample_type_id: uuid.UUID
    volume_ml: Decimal | None
    collection_datetime: datetime
    collected_by: uuid.UUID | None
    expiration_date: date | None
    status: SampleStatus
    current_position_id: uuid.UUID | None
    laboratory_id: uuid.UUID
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MovementRead(BaseModel):
    id: uuid.UUID
    sample_id: uuid.UUID
    laboratory_id: uuid.UUID
    sequence: int
    from_position_id: uuid.UUID | None
    from_position_label: str | None = None
    to_position_id: uuid.UUID | None
    to_position_label: str | None = None
    previous_status: SampleStatus | None
    new_status: SampleStatus
    performed_by: uuid.UUID
    reason: str | None
    notes: str | None
    performed_at: datetime

    model_config = {"from_attributes": True}
