"""Per-request principal and laboratory scope.

Every laboratory filter in the service layer is built here, by ``LabScope``,
so no query can silently omit it.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Select

from app.core.exceptions import ForbiddenError, ValidationError


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as supplied by the identity provider."""

    user_id: uuid.UUID
    laboratory_id: uuid.UUID | None = None
    is_global_admin: bool = False
    roles: tuple[str, ...] = field(default_factory=tuple)
    permissions: tuple[str, ...] = field(default_factory=tuple)

    def has_role(self, *roles: str) -> bool:
        return self.is_global_admin or any(r in self.roles for r in roles)


@dataclass(frozen=True)
class LabScope:
    """The laboratory a request may read and write.

    ``laboratory_id`` is None only for a global admin who did not target a
    laboratory; such a scope reads across laboratories and cannot create rows.
    """

    actor_id: uuid.UUID
    laboratory_id: uuid.UUID | None
    is_global_admin: bool = False

    @classmethod
    def for_principal(
        cls,
        principal: Principal,
        requested_laboratory_id: uuid.UUID | None = None,
    ) -> "LabScope":
        if principal.is_global_admin:
            return cls(
                actor_id=principal.user_id,
                laboratory_id=requested_laboratory_id or principal.laboratory_id,
                is_global_admin=True,
            )
        if principal.laboratory_id is None:
            raise ForbiddenError("User is not assigned to a laboratory.")
        if requested_laboratory_id and requested_laboratory_id != principal.laboratory_id:
            raise ForbiddenError("Access to this laboratory is not allowed.")
        return cls(actor_id=principal.user_id, laboratory_id=principal.laboratory_id)

    @property
    def is_unscoped(self) -> bool:
        return self.laboratory_id is None

    def apply(self, query: Select, model: Any) -> Select:
        """Restrict ``query`` to rows of ``model`` inside this laboratory."""
        if self.laboratory_id is None:
            return query
        return query.where(model.laboratory_id == self.laboratory_id)

    def require_laboratory(self) -> uuid.UUID:
        """Laboratory to create rows in; an unscoped admin must pick one."""
        if self.laboratory_id is None:
            raise ValidationError(
                "A laboratory must be selected (X-Laboratory-ID) for this operation."
            )
        return self.laboratory_id
