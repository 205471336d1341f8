"""Query string encoding for request parameter objects.

Every call encodes its request data into the query string, writes included,
so one parameter type can describe both a lookup's filters and a write's
body. Types opt in by implementing ``to_query_parameters``.
"""

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


class QueryEncodingError(TypeError):
    """Raised when request data cannot be expressed as query parameters."""


@runtime_checkable
class QueryEncodable(Protocol):
    def to_query_parameters(self) -> list[tuple[str, str]]:
        """Return the ordered query parameters for this value."""
        ...


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(format_value(v) for v in value)
    return str(value)


def encode_query(data: Any) -> list[tuple[str, str]]:
    """Encode request data as an ordered list of query parameters."""
    if data is None:
        return []
    if isinstance(data, QueryEncodable):
        return list(data.to_query_parameters())
    if isinstance(data, Mapping):
        return [(str(k), format_value(v)) for k, v in data.items() if v is not None]
    raise QueryEncodingError(
        f"cannot encode {type(data).__name__} as query parameters: "
        "implement to_query_parameters() or pass a mapping"
    )
