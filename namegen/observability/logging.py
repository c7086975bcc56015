"""
Structured Logging with Structlog.

One JSON object per line on stdout. Every entry carries the service name,
version and environment plus whatever request context is bound through
log_context (request_id, user_id). Session tokens and provider keys never
reach the output: redact_secrets masks them before rendering.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from namegen.config import settings

REDACTED = "[redacted]"

# Keys whose values are credentials (matched case-insensitively)
SECRET_KEYS = frozenset(
    {
        "authorization",
        "cookie",
        "access_token",
        "token",
        "api_key",
        "x-api-key",
        "secret",
    }
)

# Libraries that log every request or query at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "asyncio")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service identity to every entry."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    event_dict["environment"] = settings.environment
    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential values, including one level down in dict values."""
    for key, value in list(event_dict.items()):
        if key.lower() in SECRET_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if str(k).lower() in SECRET_KEYS else v for k, v in value.items()
            }
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog on top of the standard library root logger.

    Entries look like:
    {
        "event": "credits_charged",
        "level": "info",
        "timestamp": "2026-10-19T12:00:00.123456Z",
        "logger": "namegen.services.ledger",
        "service": "namegen-api",
        "environment": "production",
        "request_id": "3f0c...",
        "user_id": "...",
        "credits_after": 4
    }

    LOG_FORMAT=console switches to the coloured development renderer.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structured logger for a module: ``logger = get_logger(__name__)``."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """
    Bind request-scoped values for every entry logged inside the block.

    Values bound by an enclosing block are restored on exit, so nested
    contexts (request, then user) compose.

    Usage:
        with log_context(request_id=request_id):
            logger.info("request_started")
    """
    tokens = structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
