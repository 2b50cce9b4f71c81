"""Service-layer error taxonomy.

Services raise these; ``app.core.error_handlers`` turns them into the
standard error envelope with the matching HTTP status.
"""

from fastapi import status


class ServiceError(Exception):
    """Base for business errors surfaced to the caller with a kind and message."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BAD_REQUEST"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    """Referenced entity is absent or outside the caller's laboratory."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(ServiceError):
    """Uniqueness violation (barcode, per-laboratory code)."""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class InvalidStateError(ServiceError):
    """Business-rule violation: unavailable position, bad grid, illegal transition."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_STATE"


class ValidationError(ServiceError):
    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    code = "VALIDATION_ERROR"


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
