"""
Structured logging configuration using structlog wrapping stdlib.

The `workpulse` CLI calls setup_logging() once before dispatching a command.
Library callers (a scheduler, the dashboard backend) call it themselves or
leave logging to their host application.

Logs always go to stderr: CLI commands print their result as a single JSON
document on stdout, and anything else there would corrupt it.

Environment:
    WORKPULSE_LOG_LEVEL   DEBUG, INFO (default), WARNING, ERROR
    WORKPULSE_LOG_FORMAT  "json" for one JSON object per line, otherwise
                          console output

Pipeline modules bind period_start with structlog.contextvars, so every
line logged while a period is analyzed carries it.

Usage:
    from workpulse.logging_config import get_logger, setup_logging

    setup_logging()
    logger = get_logger(__name__)
    logger.info("run_committed", run_id=run_id)
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog and the stdlib root logger. Arguments override the environment."""
    if level is None:
        level = os.environ.get("WORKPULSE_LOG_LEVEL", "INFO")

    if json_output is None:
        json_output = os.environ.get("WORKPULSE_LOG_FORMAT", "").lower() == "json"

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stdout is reserved for command output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # The anthropic client logs every request at INFO
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


__all__ = ["get_logger", "setup_logging"]
