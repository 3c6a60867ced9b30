"""Structured logging configuration."""

import logging
import sys
from typing import TextIO

import structlog


# Standard library loggers of the HTTP stack, rendered through structlog
HTTP_STACK_LOGGERS = ("httpx", "httpcore")


def _renderer(output: TextIO, json_format: bool) -> structlog.types.Processor:
    if json_format:
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=output.isatty())


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structured logging for the fetcher.

    Fetcher events and records emitted by httpx/httpcore through the
    standard library share one renderer, so a poll run produces a single
    stream of JSON lines (or console lines). The HTTP stack is held at
    WARNING or above; its per-request INFO lines would otherwise drown
    the fetcher's own events.

    Args:
        level: Logging level (default: INFO).
        output: Output stream (default: stderr).
        json_format: Whether to use JSON format (default: True).
    """
    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer = _renderer(output, json_format)

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(output)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[structlog.stdlib.add_logger_name, *shared],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    for name in HTTP_STACK_LOGGERS:
        stack_logger = logging.getLogger(name)
        stack_logger.handlers = [handler]
        stack_logger.setLevel(max(level, logging.WARNING))
        stack_logger.propagate = False


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger instance."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_poll_context(poll_id: str, **context: object) -> None:
    """Bind the poll run identifier (and any extra fields) to subsequent events.

    Args:
        poll_id: Unique identifier of the poll run.
        **context: Additional fields, e.g. the work file being polled.
    """
    structlog.contextvars.bind_contextvars(poll_id=poll_id, **context)


def clear_poll_context() -> None:
    """Drop all poll run fields from subsequent events."""
    structlog.contextvars.clear_contextvars()
