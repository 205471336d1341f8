"""Response envelope shared by every gateway endpoint.

    {"request_id": "...", "data": ...}
    {"request_id": "...", "error": {"error": "...", "code": "..."}}

The encoder used to write responses lives on ``app.state.response_encoder``
and is read on every write, so it is configured once at startup rather than
held in a module global. The request ID comes from ``request.state``, set by
``RequestIdMiddleware``.
"""

from typing import Any

import structlog
from fastapi import Request, Response

from shared.exceptions import GatewayError
from shared.http.encoders import Encoder, JSONEncoder
from shared.http.errors import APIError, ErrorCode

logger = structlog.get_logger()


def _encoder(request: Request) -> Encoder:
    return getattr(request.app.state, "response_encoder", None) or JSONEncoder()


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "")


def write(request: Request, status_code: int, body: dict[str, Any]) -> Response:
    encoder = _encoder(request)
    try:
        content = encoder.encode(body)
    except Exception as exc:  # noqa: BLE001
        logger.error("response_encoding_failed", error=str(exc), status_code=status_code)
        return Response(status_code=status_code)
    return Response(content=content, status_code=status_code, media_type=encoder.content_type)


def respond_ok(request: Request, data: Any) -> Response:
    body: dict[str, Any] = {"request_id": _request_id(request)}
    if data is not None:
        body["data"] = data
    return write(request, 200, body)


def status_for(exc: Exception) -> int:
    """HTTP status an exception is answered with.

    Upstream errors reuse the upstream status (500 when none was received);
    gateway errors carry their own status.
    """
    if isinstance(exc, APIError):
        return exc.status_code or 500
    if isinstance(exc, GatewayError):
        return exc.status
    return 500


def respond_error(request: Request, exc: Exception) -> Response:
    """Map an exception to the error envelope. Upstream errors expose only their code."""
    status, code, message = status_for(exc), ErrorCode.SERVER_ERROR, str(exc)
    if isinstance(exc, APIError):
        code = exc.code
        message = str(exc.code)
    elif isinstance(exc, GatewayError):
        code, message = exc.code, exc.message

    error: dict[str, Any] = {"error": message, "code": str(code)}
    return write(
        request,
        status,
        {"request_id": _request_id(request), "error": error},
    )
