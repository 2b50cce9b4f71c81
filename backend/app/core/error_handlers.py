"""Exception handlers that render every failure as the error envelope.

Shape: ``{"success": false, "error": {"code", "message", "details"?}}``.
Database and unexpected errors are logged in full and reported without
internal detail unless DEBUG is on.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.core.exceptions import ServiceError

logger = logging.getLogger(__name__)


def _envelope(
    status_code: int, code: str, message: str, details: list | None = None
) -> JSONResponse:
    error: dict = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _where(request: Request) -> str:
    return f"{request.method} {request.url.path}"


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """NotFound, Conflict, InvalidState, Validation and Forbidden from services."""
    logger.debug("%s on %s: %s", exc.code, _where(request), exc.message)
    return _envelope(exc.status_code, exc.code, exc.message)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # 401 from the bearer dependency, 404/405 from routing.
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _envelope(exc.status_code, f"HTTP_{exc.status_code}", message)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": " -> ".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", "Invalid value"),
            "type": err.get("type", "value_error"),
        }
        for err in exc.errors()
    ]
    return _envelope(
        status.HTTP_422_UNPROCESSABLE_CONTENT,
        "VALIDATION_ERROR",
        "Request validation failed.",
        details,
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """A uniqueness race lost at commit time, e.g. two appends to one sample's ledger."""
    logger.warning("Integrity error on %s: %s", _where(request), exc.orig)
    return _envelope(
        status.HTTP_409_CONFLICT,
        "CONFLICT",
        "The record was changed by another request. Reload and retry.",
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s", _where(request), exc_info=exc)
    message = f"Database error: {exc}" if settings.DEBUG else "A database error occurred."
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR", message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s", _where(request), exc_info=exc)
    message = f"Internal error: {exc}" if settings.DEBUG else "An unexpected error occurred."
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", message)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
