"""FastAPI exception handlers for custom exceptions."""

from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from tableplan.exceptions import (
    AnalysisInProgressError,
    BookingAPIError,
    ConfigurationError,
    EntityNotFoundError,
    GeometryError,
    MLInferenceError,
    SessionNotFoundError,
    StaleRunError,
    StorageError,
    TableplanError,
    ValidationError,
)


def status_for(exc: TableplanError) -> int:
    if isinstance(exc, (ValidationError, ConfigurationError, GeometryError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, (SessionNotFoundError, EntityNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (AnalysisInProgressError, StaleRunError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, (MLInferenceError, BookingAPIError)):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, StorageError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def tableplan_exception_handler(request: Request, exc: TableplanError) -> JSONResponse:
    """Handle tableplan-specific exceptions."""
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Request failed: {type} - {message}",
        type=type(exc).__name__,
        message=str(exc),
        details=exc.details,
        path=request.url.path,
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": exc.details,
        },
    )
