"""Structured logging configuration with structlog."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from socialpulse.config import Settings

SERVICE_NAME = "socialpulse"


def add_service_info(env: str) -> structlog.types.Processor:
    """Processor stamping ``service`` and ``env`` on every JSON log line."""

    def processor(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("env", env)
        return event_dict

    return processor


def setup_logging(settings: "Settings") -> None:
    """Configure structlog for the application.

    Development gets colored console output; every other environment emits
    one JSON object per line tagged with the service and environment.
    """
    is_dev = settings.env == "development"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if is_dev:
        processors: list[structlog.types.Processor] = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        processors = [
            *shared_processors,
            add_service_info(settings.env),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, settings.log_level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level),
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # httpx logs every upstream page fetch at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    # One line per scheduled run is already logged by the job itself
    logging.getLogger("apscheduler.executors").setLevel(logging.WARNING)


@contextmanager
def symbol_context(symbol: str, **extra: Any) -> Iterator[None]:
    """Bind ``symbol`` to every log line emitted inside the block.

    Uses structlog contextvars, so lines from the engines called inside
    (and from tasks they start) carry the symbol without passing it along.
    """
    with structlog.contextvars.bound_contextvars(symbol=symbol.upper(), **extra):
        yield


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
