from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse

from invoice_intake.core.logging import get_logger, log_event
from invoice_intake.modules.pipeline.errors import (
    AttemptLimitReachedError,
    DocumentNotFoundError,
    InputValidationError,
    InvalidTransitionError,
    InvoiceNotFoundError,
    PipelineError,
)

logger = get_logger(__name__)

_STATUS_BY_ERROR: dict[type[PipelineError], int] = {
    DocumentNotFoundError: status.HTTP_404_NOT_FOUND,
    InvoiceNotFoundError: status.HTTP_404_NOT_FOUND,
    AttemptLimitReachedError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    InputValidationError: status.HTTP_400_BAD_REQUEST,
}


def status_for(error: PipelineError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = status_for(exc)
    log_event(
        logger,
        "http.pipeline_error",
        method=request.method,
        path=request.url.path,
        status_code=status_code,
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})
