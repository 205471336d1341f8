"""FastAPI middleware for request ID injection, access logging and error handling."""

import time
from collections.abc import Callable
from uuid import uuid4

import structlog
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from shared.exceptions import GatewayError
from shared.http.errors import REQUEST_ID_HEADER, APIError, ErrorCode, code_for_status
from shared.responses import respond_error

logger = structlog.get_logger()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Inject a unique request ID into every request and response.

    Header name: X-Request-ID, the same header the upstream client sends,
    so one ID can be traced across the gateway and its upstream calls.
    Default format: UUID v4. The ID is stored on ``request.state`` for the
    response envelope and bound into structlog contextvars for logs.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Callable[..., Response]]
    ):
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = rid
        structlog.contextvars.bind_contextvars(request_id=rid)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            structlog.contextvars.unbind_contextvars("request_id")


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Debug-level access log: method, path, status and duration."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Callable[..., Response]]
    ):
        start = time.perf_counter()
        response = await call_next(request)
        logger.debug(
            "%s: %s - %d - %.2fms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response


async def api_error_handler(request: Request, exc: APIError) -> Response:
    """Upstream failures that escaped a route handler."""
    logger.error("upstream_call_failed", code=str(exc.code), error=str(exc))
    return respond_error(request, exc)


async def gateway_error_handler(request: Request, exc: GatewayError) -> Response:
    return respond_error(request, exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> Response:
    """Convert FastAPI/Pydantic native validation errors into the error envelope."""
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{loc}: {err.get('msg', 'validation error')}")
    error = GatewayError("; ".join(messages), code=ErrorCode.VALIDATION_ERROR, status=422)
    return respond_error(request, error)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Convert generic HTTP exceptions (unknown routes, bad methods) into the error envelope."""
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    error = GatewayError(message, code=code_for_status(exc.status_code), status=exc.status_code)
    return respond_error(request, error)
