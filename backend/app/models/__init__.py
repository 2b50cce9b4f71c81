"""All sample tracker database models.

Import all models here so Alembic and SQLAlchemy can discover them.
"""

from app.models.base import Base, BaseModel, BaseModelNoSoftDelete  # noqa: F401

# Tenancy
from app.models.laboratory import Laboratory  # noqa: F401

# Audit
from app.models.audit import AuditLog  # noqa: F401

# Storage
from app.models.storage import (  # noqa: F401
    Box,
    Freezer,
    Shelf,
    StoragePosition,
    StorageRoom,
)

# Samples
from app.models.sample import Sample, SampleMovement, SampleType  # noqa: F401
