"""Exception handlers: domain errors and store outages rendered as JSON."""

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from parkrank.errors import UNAVAILABLE_ERRORS, NotFoundError, ParkRankError, ValidationError, VoteConflictError

logger = structlog.get_logger()

# Domain error -> (status, retryable). Looked up along the exception's MRO.
DOMAIN_STATUS: dict[type[ParkRankError], tuple[int, bool]] = {
    NotFoundError: (404, False),
    ValidationError: (422, False),
    VoteConflictError: (503, True),
}


def _error_response(status_code: int, detail: Any, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, **extra})


def _domain_status(exc: ParkRankError) -> tuple[int, bool]:
    for cls in type(exc).__mro__:
        if cls in DOMAIN_STATUS:
            return DOMAIN_STATUS[cls]
    return 500, False


def setup_error_handlers(app: FastAPI) -> None:
    """Register the exception handlers on ``app``."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(422, "Validation error", errors=exc.errors())

    @app.exception_handler(ParkRankError)
    async def domain_error_handler(request: Request, exc: ParkRankError) -> JSONResponse:
        status_code, retryable = _domain_status(exc)
        if retryable:
            logger.warning("retryable_error", path=request.url.path, error=str(exc))
            return _error_response(status_code, str(exc), retryable=True)
        return _error_response(status_code, str(exc))

    async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("store_unavailable", path=request.url.path, method=request.method, error=str(exc))
        return _error_response(503, "Service temporarily unavailable", retryable=True)

    for exc_class in UNAVAILABLE_ERRORS:
        app.add_exception_handler(exc_class, store_unavailable_handler)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return _error_response(500, "Internal server error")
