"""Credential providers applied to outbound upstream requests.

A provider mutates the request once, after the base request is built and
before any body headers are set. The header and query factories return
``None`` for empty values so optional tokens can be passed straight through.
"""

import base64
from typing import Protocol, runtime_checkable

import httpx


@runtime_checkable
class Credentials(Protocol):
    """Common interface for all authentication schemes."""

    def apply(self, request: httpx.Request) -> None:
        """Apply the authentication scheme to ``request`` in place."""
        ...


class BasicAuth:
    """Sets the username and password using HTTP basic authentication."""

    def __init__(self, username: str, password: str) -> None:
        self._username = username
        self._password = password

    def apply(self, request: httpx.Request) -> None:
        token = base64.b64encode(f"{self._username}:{self._password}".encode()).decode("ascii")
        request.headers["Authorization"] = f"Basic {token}"


class HeaderToken:
    """Sets a fixed header value, used for bearer tokens and API secrets."""

    def __init__(self, key: str, value: str) -> None:
        self.key = key
        self.value = value

    def apply(self, request: httpx.Request) -> None:
        request.headers[self.key] = self.value


class QueryToken:
    """Sets (or overwrites) a query string parameter."""

    def __init__(self, key: str, value: str) -> None:
        self.key = key
        self.value = value

    def apply(self, request: httpx.Request) -> None:
        request.url = request.url.copy_set_param(self.key, self.value)


def from_header(key: str, value: str) -> HeaderToken | None:
    if not key or not value:
        return None
    return HeaderToken(key, value)


def from_query(key: str, value: str) -> QueryToken | None:
    if not key or not value:
        return None
    return QueryToken(key, value)


def bearer_token(token: str) -> HeaderToken | None:
    """Authorization bearer token, or no credentials when ``token`` is empty."""
    if not token:
        return None
    return from_header("Authorization", f"Bearer {token}")
