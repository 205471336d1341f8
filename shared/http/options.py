"""Client options, built by applying option functions over the defaults.

``apply_options`` starts from the defaults and applies each option in
order, producing a frozen ``Options`` snapshot the client keeps for its
lifetime. Options that receive ``None`` for a required collaborator leave
the current value alone.
"""

from collections.abc import Callable
from dataclasses import dataclass, field, replace

import httpx

from shared.http.backoff import Backoff, zero
from shared.http.credentials import Credentials
from shared.http.encoders import Encoder, JSONEncoder
from shared.logging import Logger, NullLogger

DEFAULT_MAX_RETRIES = 2
DEFAULT_LANGUAGE = "en-GB"


@dataclass(frozen=True)
class Options:
    # None lets the client build a default AsyncHTTPTransport
    transport: httpx.AsyncBaseTransport | None = None
    max_retries: int = DEFAULT_MAX_RETRIES
    encoder: Encoder = field(default_factory=JSONEncoder)
    user_agent: str = ""
    credentials: Credentials | None = None
    backoff: Backoff = field(default_factory=zero)
    logger: Logger = field(default_factory=NullLogger)
    language: str = DEFAULT_LANGUAGE
    # seconds; 0 applies no timeout
    timeout: float = 0.0


Option = Callable[[Options], Options]


def apply_options(*opts: Option) -> Options:
    options = Options()
    for opt in opts:
        options = opt(options)
    return options


def with_transport(transport: httpx.AsyncBaseTransport | None) -> Option:
    """Override the transport, e.g. to tune TLS or inject a test transport."""

    def apply(o: Options) -> Options:
        return o if transport is None else replace(o, transport=transport)

    return apply


def with_max_retries(n: int) -> Option:
    def apply(o: Options) -> Options:
        return replace(o, max_retries=max(0, n))

    return apply


def with_encoder(encoder: Encoder | None) -> Option:
    def apply(o: Options) -> Options:
        return o if encoder is None else replace(o, encoder=encoder)

    return apply


def with_user_agent(user_agent: str) -> Option:
    def apply(o: Options) -> Options:
        return replace(o, user_agent=user_agent)

    return apply


def with_credentials(credentials: Credentials | None) -> Option:
    def apply(o: Options) -> Options:
        return replace(o, credentials=credentials)

    return apply


def with_backoff(backoff: Backoff | None) -> Option:
    def apply(o: Options) -> Options:
        return o if backoff is None else replace(o, backoff=backoff)

    return apply


def with_logger(logger: Logger | None) -> Option:
    def apply(o: Options) -> Options:
        return o if logger is None else replace(o, logger=logger)

    return apply


def with_language(language: str) -> Option:
    """Override the Accept-Language tag."""

    def apply(o: Options) -> Options:
        return replace(o, language=language or DEFAULT_LANGUAGE)

    return apply


def with_timeout(seconds: float) -> Option:
    def apply(o: Options) -> Options:
        return replace(o, timeout=max(0.0, seconds))

    return apply
