"""Structured logging for the task list server and client.

Uses structlog. Console output is meant for a terminal running the server;
JSON output (``TASKLIST_LOG_FORMAT=json``) emits one object per line for log
collectors. Values bound with ``log_context`` (the peer address, for
example) are attached to every event logged inside the block.
"""

import logging
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, TextIO

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from tasklist.config import Settings


def configure_logging(settings: "Settings | None" = None, stream: TextIO | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        settings: Application settings. If None, logs at info level to the console.
        stream: Output stream. Defaults to stderr.
    """
    stream = stream or sys.stderr
    log_level = logging.INFO
    log_format = "console"

    if settings is not None:
        log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
        log_format = settings.log_format

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Processor
    if log_format == "json":
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=stream.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    # asyncio reports unhandled task errors through the stdlib
    logging.basicConfig(
        format="%(levelname)s %(name)s: %(message)s",
        level=log_level,
        handlers=[logging.StreamHandler(stream)],
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name) if name else structlog.get_logger()


@contextmanager
def log_context(**kwargs: object) -> Iterator[None]:
    """Bind values to every log event emitted inside the block.

    Bindings live in a context variable, so each asyncio task (and each
    ``asyncio.to_thread`` call it makes) sees only its own.

    Example:
        with log_context(peer="127.0.0.1:53122"):
            logger.info("client_connected")  # includes peer
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


class Loggers:
    """Named loggers for task list components."""

    @staticmethod
    def store() -> structlog.stdlib.BoundLogger:
        """Logger for the persistence layer."""
        return get_logger("tasklist.store")

    @staticmethod
    def service() -> structlog.stdlib.BoundLogger:
        return get_logger("tasklist.service")

    @staticmethod
    def server() -> structlog.stdlib.BoundLogger:
        """Logger for the TCP server loop."""
        return get_logger("tasklist.server")

    @staticmethod
    def client() -> structlog.stdlib.BoundLogger:
        return get_logger("tasklist.client")

    @staticmethod
    def config() -> structlog.stdlib.BoundLogger:
        return get_logger("tasklist.config")
