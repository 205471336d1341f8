"""Serving-layer error hierarchy.

All gateway errors extend GatewayError and are converted into the JSON
error envelope by the exception handler middleware. Upstream failures are
raised as ``shared.http.errors.APIError`` and handled alongside these.
"""

from shared.http.errors import ErrorCode


class GatewayError(Exception):
    def __init__(self, message: str, code: ErrorCode, status: int):
        self.message = message
        self.code = code
        self.status = status
        super().__init__(message)


class InvalidRequestError(GatewayError):
    def __init__(self, message: str):
        super().__init__(message, code=ErrorCode.INVALID_REQUEST, status=400)
