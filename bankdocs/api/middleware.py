"""API middleware: request logging and error mapping.

Starlette runs middleware last added, first executed.  ``main.py`` adds
:class:`ErrorHandlingMiddleware` first and :class:`RequestLoggingMiddleware`
second, so the request log records the status code after errors have been
mapped, and the request id is already bound while errors are logged.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from bankdocs.api.schemas import ErrorResponse
from bankdocs.utils.errors import BankDocsError, IngestionBusyError, RunNotFoundError
from bankdocs.utils.logging import get_logger

REQUEST_ID_HEADER = "X-Request-ID"

_logger: structlog.BoundLogger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a request id to the log context and log each request once it completes.

    An incoming ``X-Request-ID`` is reused; otherwise a new one is generated.
    The id is echoed back on the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")


def status_for(exc: BankDocsError) -> int:
    """HTTP status code for an application error."""
    if isinstance(exc, RunNotFoundError):
        return 404
    if isinstance(exc, IngestionBusyError):
        return 409
    if exc.retryable:
        return 503
    return 500


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert uncaught ``BankDocsError`` subclasses into ``ErrorResponse`` bodies.

    The client receives the error class, its message and whether retrying
    may help; the provider name stays in the server log.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except BankDocsError as exc:
            status_code = status_for(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=request.url.path,
                status=status_code,
            )
            body = ErrorResponse(
                error=type(exc).__name__,
                detail=exc.message,
                retryable=exc.retryable,
            )
            return JSONResponse(status_code=status_code, content=body.model_dump())
