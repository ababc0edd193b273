"""Exception handlers mapping SpecForge errors to HTTP responses.

Error bodies share one shape:

    {"detail": {"error_code": "...", "message": "...", ...}}
"""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from specforge.errors import (
    BudgetExceededError,
    IllegalTransitionError,
    MalformedOutputError,
    NotOwnerError,
    NotReadyError,
    PhaseAlreadyWrittenError,
    ProjectNotFoundError,
    ProviderRequestError,
    ProviderUnavailableError,
    SpecForgeError,
    ValidationBelowThresholdError,
)
from specforge.logging import get_logger

logger = get_logger(__name__)

# Checked in order; subclasses must precede their bases
STATUS_BY_ERROR: list[tuple[type[SpecForgeError], int]] = [
    (ProjectNotFoundError, status.HTTP_404_NOT_FOUND),
    (NotOwnerError, status.HTTP_403_FORBIDDEN),
    (IllegalTransitionError, status.HTTP_409_CONFLICT),
    (PhaseAlreadyWrittenError, status.HTTP_409_CONFLICT),
    (NotReadyError, status.HTTP_409_CONFLICT),
    (ValidationBelowThresholdError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MalformedOutputError, status.HTTP_502_BAD_GATEWAY),
    (ProviderRequestError, status.HTTP_502_BAD_GATEWAY),
    (ProviderUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (BudgetExceededError, status.HTTP_504_GATEWAY_TIMEOUT),
]


def status_for(exc: SpecForgeError) -> int:
    """HTTP status code for a SpecForge error."""
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def specforge_error_handler(request: Request, exc: SpecForgeError) -> JSONResponse:
    """Render a SpecForge error with its mapped status code."""
    code = status_for(exc)
    log = logger.warning if code < 500 else logger.error
    log(
        "request_error",
        path=request.url.path,
        error_code=exc.error_code,
        status_code=code,
        error=str(exc),
    )
    return JSONResponse(status_code=code, content={"detail": exc.to_dict()})


def register_error_handlers(app: FastAPI) -> None:
    """Register SpecForge exception handlers on an app."""
    app.add_exception_handler(SpecForgeError, specforge_error_handler)
