"""Structured error responses.

`IngestError` subclasses and FastAPI request validation errors are turned into
`{"error": {"code", "message"}}` bodies by exception handlers. Anything else
escaping a route is caught by `ErrorHandlerMiddleware` and reported as an
opaque 500.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from ..errors import IngestError, InvalidRequest
from .correlation import get_correlation_id

log = structlog.get_logger()


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


async def ingest_error_handler(request: Request, exc: IngestError) -> JSONResponse:
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is not None:
        metrics.record_rejected(exc.code)
    if exc.is_client_fault:
        log.warning("request.rejected", code=exc.code, message=exc.message, path=request.url.path)
    else:
        # Internal detail was logged where the fault was caught
        log.error("request.failed", code=exc.code, path=request.url.path)
    return error_response(exc.status_code, exc.code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "invalid request") if errors else "invalid request"
    return await ingest_error_handler(request, InvalidRequest(message))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IngestError, ingest_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Provides an opaque structured response for unhandled exceptions."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            log.error(
                "unhandled.exception",
                error=str(exc),
                error_type=exc.__class__.__name__,
                path=request.url.path,
                correlation_id=get_correlation_id(),
                exc_info=True,
            )
            return error_response(500, "internal_error", "An unexpected error occurred")
