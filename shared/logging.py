"""Structured logging configuration.

The gateway logs through structlog. The upstream client only needs a small
leveled interface (``Logger``), which structlog's bound loggers satisfy;
``NullLogger`` is the silent default for clients built without one.
"""

import logging
import sys
from typing import Any, Protocol, TextIO, runtime_checkable

import structlog

# CLI levels: 0 (none), 1 (error), 2 (warn), 3 (info), 4 (debug)
CLI_LEVELS: dict[int, int] = {
    0: logging.CRITICAL,
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}


@runtime_checkable
class Logger(Protocol):
    """Leveled logging with printf-style positional arguments."""

    def debug(self, event: str, *args: Any) -> Any: ...

    def info(self, event: str, *args: Any) -> Any: ...

    def warning(self, event: str, *args: Any) -> Any: ...

    def error(self, event: str, *args: Any) -> Any: ...


class NullLogger:
    """Discards everything."""

    def debug(self, event: str, *args: Any) -> None:
        pass

    def info(self, event: str, *args: Any) -> None:
        pass

    def warning(self, event: str, *args: Any) -> None:
        pass

    def error(self, event: str, *args: Any) -> None:
        pass


def level_from_cli(value: int) -> int:
    """Translate a 0-4 CLI verbosity into a logging level, clamping to debug."""
    return CLI_LEVELS[max(0, min(value, 4))]


def configure_logging(
    level: int = logging.INFO,
    json_output: bool = True,
    output: TextIO = sys.stderr,
) -> None:
    """Configure structlog with timestamps, levels and contextvars (request_id)."""
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=output, level=level)
