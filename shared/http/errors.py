"""Normalized errors raised by the upstream HTTP client.

Every failure the client surfaces is an ``APIError``. The subclasses form a
closed set of kinds so callers can handle each one explicitly:

- ``TransportError``: the request was never answered (``request_error``,
  ``http_client_error``); ``status_code`` is always 0
- ``EncodingError``: a body or query could not be encoded, or a response
  could not be decoded (``encoding_error``)
- ``UpstreamError``: the upstream answered with a non-2xx status; the code
  is derived from that status
"""

import base64
import json
from enum import StrEnum
from http import HTTPStatus
from typing import Any

import httpx

REQUEST_ID_HEADER = "X-Request-ID"

BODY_SAMPLE_SIZE = 500


class ErrorCode(StrEnum):
    UNKNOWN_ERROR = "unknown_error"

    # derived from an upstream status code
    INVALID_REQUEST = "invalid_request"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INVALID_OPERATION = "invalid_operation"
    RESOURCE_CONFLICT = "resource_conflict"
    INVALID_CONTENT_TYPE = "invalid_content_type"
    VALIDATION_ERROR = "validation_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SERVER_ERROR = "server_error"
    SERVER_UNAVAILABLE = "server_unavailable"

    # client side, never reached a semantic HTTP response
    ENCODING_ERROR = "encoding_error"
    REQUEST_ERROR = "request_error"
    HTTP_CLIENT_ERROR = "http_client_error"


_STATUS_CODES: dict[int, ErrorCode] = {
    HTTPStatus.BAD_REQUEST: ErrorCode.INVALID_REQUEST,
    HTTPStatus.UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
    HTTPStatus.FORBIDDEN: ErrorCode.FORBIDDEN,
    HTTPStatus.NOT_FOUND: ErrorCode.NOT_FOUND,
    HTTPStatus.METHOD_NOT_ALLOWED: ErrorCode.INVALID_OPERATION,
    HTTPStatus.CONFLICT: ErrorCode.RESOURCE_CONFLICT,
    HTTPStatus.PRECONDITION_FAILED: ErrorCode.INVALID_CONTENT_TYPE,
    HTTPStatus.UNPROCESSABLE_ENTITY: ErrorCode.VALIDATION_ERROR,
    HTTPStatus.TOO_MANY_REQUESTS: ErrorCode.RATE_LIMIT_EXCEEDED,
    HTTPStatus.INTERNAL_SERVER_ERROR: ErrorCode.SERVER_ERROR,
    HTTPStatus.SERVICE_UNAVAILABLE: ErrorCode.SERVER_UNAVAILABLE,
    HTTPStatus.GATEWAY_TIMEOUT: ErrorCode.SERVER_UNAVAILABLE,
}


def code_for_status(status_code: int) -> ErrorCode:
    """Map an upstream HTTP status to an error code."""
    return _STATUS_CODES.get(status_code, ErrorCode.UNKNOWN_ERROR)


def retrieve_sample(body: bytes | None) -> bytes | None:
    """Return at most ``BODY_SAMPLE_SIZE`` bytes of ``body``, suffixed with
    ``...`` when clipped. Empty bodies have no sample."""
    if not body:
        return None
    if len(body) <= BODY_SAMPLE_SIZE:
        return body
    return body[:BODY_SAMPLE_SIZE] + b"..."


def _message(exc: BaseException | None) -> str | None:
    if exc is None:
        return None
    return str(exc) or type(exc).__name__


class APIError(Exception):
    """A failed upstream call, with request and response samples for diagnostics."""

    def __init__(
        self,
        code: ErrorCode,
        *,
        method: str,
        resource: str,
        request_id: str,
        status_code: int = 0,
        request: bytes | None = None,
        response: bytes | None = None,
        source: str | None = None,
    ) -> None:
        self.code = code
        self.status_code = status_code
        self.method = method
        self.resource = resource
        self.request_id = request_id
        self.request = request
        self.response = response
        self.source = source
        super().__init__(str(self))

    def to_dict(self) -> dict[str, Any]:
        """Wire shape used for cross-boundary diagnostics."""
        body: dict[str, Any] = {
            "code": str(self.code),
            "status_code": self.status_code,
            "method": self.method,
            "resource": self.resource,
            "request_id": self.request_id,
        }
        if self.request:
            body["request"] = base64.b64encode(self.request).decode("ascii")
        body["response"] = (
            base64.b64encode(self.response).decode("ascii") if self.response else None
        )
        if self.source:
            body["source"] = self.source
        return body

    def __str__(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code.value!r}, status_code={self.status_code}, "
            f"method={self.method!r}, resource={self.resource!r})"
        )


class TransportError(APIError):
    """The request could not be built or no response was received."""


class EncodingError(APIError):
    """A request could not be encoded or a response could not be decoded."""


class UpstreamError(APIError):
    """The upstream answered with an error status."""


_KINDS: dict[ErrorCode, type[APIError]] = {
    ErrorCode.ENCODING_ERROR: EncodingError,
    ErrorCode.REQUEST_ERROR: TransportError,
    ErrorCode.HTTP_CLIENT_ERROR: TransportError,
}


def _kind(code: ErrorCode) -> type[APIError]:
    return _KINDS.get(code, UpstreamError)


def from_source(
    code: ErrorCode,
    path: str,
    method: str,
    request_id: str,
    exc: BaseException | None,
) -> APIError:
    """Error for a call that failed before any request was built."""
    return _kind(code)(
        code,
        method=method,
        resource=path,
        request_id=request_id,
        source=_message(exc),
    )


def from_request(
    request: httpx.Request,
    code: ErrorCode,
    exc: BaseException | None = None,
) -> APIError:
    """Error for a built (possibly sent) request that has no response."""
    return _kind(code)(
        code,
        method=request.method,
        resource=request.url.path,
        request_id=request.headers.get(REQUEST_ID_HEADER, ""),
        request=retrieve_sample(_request_body(request)),
        source=_message(exc),
    )


def from_response(
    request: httpx.Request,
    response: httpx.Response,
    body: bytes | None,
) -> APIError:
    """Error for a received response with a non-2xx status.

    The body is passed separately because the response stream may already
    have been consumed.
    """
    code = code_for_status(response.status_code)
    return UpstreamError(
        code,
        method=request.method,
        resource=request.url.path,
        request_id=request.headers.get(REQUEST_ID_HEADER, ""),
        status_code=response.status_code,
        request=retrieve_sample(_request_body(request)),
        response=retrieve_sample(body),
    )


def from_decode_failure(
    request: httpx.Request,
    response: httpx.Response,
    body: bytes | None,
    exc: BaseException,
) -> EncodingError:
    """Error for a response whose body could not be decoded into the receiver.

    ``body`` is what was read before decoding failed.
    """
    return EncodingError(
        ErrorCode.ENCODING_ERROR,
        method=request.method,
        resource=request.url.path,
        request_id=request.headers.get(REQUEST_ID_HEADER, ""),
        status_code=response.status_code,
        request=retrieve_sample(_request_body(request)),
        response=retrieve_sample(body),
        source=_message(exc),
    )


def _request_body(request: httpx.Request) -> bytes | None:
    try:
        return request.content
    except httpx.RequestNotRead:
        return None
