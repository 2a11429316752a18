"""Mapping from service errors to HTTP responses."""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from fortyfive.services.exceptions import (
    GenerationFailed,
    InsufficientCreditsError,
    NotCompletedError,
    NotFoundError,
    QueueFullError,
    SafetyError,
    ServiceError,
    StorageError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

# Checked in order; first isinstance match wins
ERROR_RESPONSES: list[tuple[type[ServiceError], int, str]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR"),
    (InsufficientCreditsError, status.HTTP_402_PAYMENT_REQUIRED, "INSUFFICIENT_CREDITS"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (NotCompletedError, status.HTTP_409_CONFLICT, "NOT_COMPLETED"),
    # Literal: the 422 constant was renamed across Starlette releases
    (SafetyError, 422, "UNSAFE_CONTENT"),
    (GenerationFailed, status.HTTP_502_BAD_GATEWAY, "GENERATION_FAILED"),
    (QueueFullError, status.HTTP_503_SERVICE_UNAVAILABLE, "QUEUE_FULL"),
    (StorageError, status.HTTP_500_INTERNAL_SERVER_ERROR, "STORAGE_ERROR"),
]


def error_response_for(exc: ServiceError) -> tuple[int, str]:
    """Return (status_code, error_code) for a service error."""
    for error_type, status_code, code in ERROR_RESPONSES:
        if isinstance(exc, error_type):
            return status_code, code
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR"


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a ServiceError as {"error": code, "message": str(exc)}."""
    status_code, code = error_response_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "request.service_error",
        error_code=code,
        error=str(exc),
        error_type=type(exc).__name__,
        request_path=request.url.path,
        status_code=status_code,
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": code, "message": str(exc)},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)  # type: ignore[arg-type]
