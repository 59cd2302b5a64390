"""Structured logging setup using structlog.

One shared processor chain (context vars, log level, stack info, exc info,
ISO timestamps, credential redaction) feeds either a ConsoleRenderer for
local development or a JSONRenderer for production.  The renderer follows
``APP_ENV`` (default ``"development"``) unless ``json_output`` forces JSON.

Standard-library ``logging`` is routed through the same chain, so lines
from httpx, uvicorn and chromadb render like ours.

Source credentials (Jira and Confluence API tokens, basic-auth headers)
must never reach a log sink; :func:`redact_credentials` masks them by key.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

REDACTED = "***"

# Event-dict keys whose values are masked before rendering.
_SENSITIVE_KEYS = frozenset(
    {"api_token", "password", "authorization", "auth", "token", "secret"}
)

# Chatty third-party loggers capped at WARNING regardless of our level.
_QUIET_LOGGERS = ("httpx", "httpcore", "chromadb.telemetry", "uvicorn.access")


def redact_credentials(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor replacing sensitive values with ``***``."""
    for key in event_dict:
        if key.lower() in _SENSITIVE_KEYS and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_credentials,
    ]


def _select_renderer(json_output: bool) -> structlog.types.Processor:
    if json_output or os.environ.get("APP_ENV", "development") == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. When False, JSON is still used if
                     ``APP_ENV`` is ``production``.

    Returns:
        A configured structlog BoundLogger.
    """
    level = log_level.upper()
    shared = _shared_processors()
    renderer = _select_renderer(json_output)

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
