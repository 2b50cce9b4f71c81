"""Audit sink.

Records every mutation with old/new value diffs and the acting user. Entries
are added to the caller's session so they commit or roll back together with
the change they describe.
"""

import logging
import uuid
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditLog
from app.models.enums import AuditAction

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    # UUID, Decimal, date, datetime
    return str(value)


class AuditService:
    """Service for creating structured audit log entries."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def record(
        self,
        *,
        actor_id: uuid.UUID | None,
        laboratory_id: uuid.UUID | None,
        entity_type: str,
        entity_id: uuid.UUID | None,
        action: AuditAction,
        old_values: dict | None = None,
        new_values: dict | None = None,
    ) -> AuditLog:
        """Create an audit log entry in the current transaction.

        Args:
            actor_id: The user who performed the action (None for system actions).
            laboratory_id: Tenant the affected entity belongs to.
            entity_type: The type of entity affected (e.g. "sample", "box").
            entity_id: The UUID of the affected entity.
            action: What happened (CREATE, UPDATE, MOVE, ...).
            old_values: Previous values before mutation.
            new_values: New values after mutation.
        """
        entry = AuditLog(
            id=uuid.uuid4(),
            user_id=actor_id,
            laboratory_id=laboratory_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=self._clean(old_values),
            new_values=self._clean(new_values),
        )
        self.db.add(entry)

        logger.info(
            "AUDIT: user=%s lab=%s action=%s entity=%s/%s",
            actor_id,
            laboratory_id,
            action.value,
            entity_type,
            entity_id,
        )
        return entry

    @staticmethod
    def _clean(values: dict | None) -> dict | None:
        if values is None:
            return None
        return {key: _jsonable(val) for key, val in values.items()}

    @staticmethod
    def diff_values(old: dict, new: dict) -> tuple[dict, dict]:
        """Compute old/new value dicts containing only changed fields.

        Returns:
            (old_changed, new_changed) - dicts with only the keys that differ.
        """
        old_changed = {}
        new_changed = {}
        for key in old.keys() | new.keys():
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                old_changed[key] = old_val
                new_changed[key] = new_val
        return old_changed, new_changed
