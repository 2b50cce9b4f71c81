"""FastAPI dependencies for the request principal, laboratory scope, and RBAC."""

import uuid
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import decode_access_token
from app.core.tenancy import LabScope, Principal
from app.models.enums import UserRole

security_scheme = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)],
) -> Principal:
    """Extract and validate the JWT, return the authenticated principal."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )

    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please log in again.",
        )
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token.",
        )

    try:
        lab_claim = payload.get("laboratory_id")
        return Principal(
            user_id=uuid.UUID(payload["sub"]),
            laboratory_id=uuid.UUID(lab_claim) if lab_claim else None,
            is_global_admin=bool(payload.get("is_global_admin", False)),
            roles=tuple(payload.get("roles") or ()),
            permissions=tuple(payload.get("permissions") or ()),
        )
    except (KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token.",
        )


def require_role(*allowed_roles: UserRole):
    """Dependency factory: restrict endpoint to specific roles (global admins pass)."""
    async def role_checker(
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> Principal:
        if not principal.has_role(*(r.value for r in allowed_roles)):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action.",
            )
        return principal
    return role_checker


async def get_lab_scope(
    principal: Annotated[Principal, Depends(get_current_principal)],
    x_laboratory_id: Annotated[uuid.UUID | None, Header()] = None,
) -> LabScope:
    """Build the request's laboratory scope once; services take it as given."""
    return LabScope.for_principal(principal, x_laboratory_id)
