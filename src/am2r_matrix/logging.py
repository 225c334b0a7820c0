"""Structured logging setup.

structlog wraps stdlib logging so that nio's own stdlib loggers and the
bot's structlog loggers share one handler and one output format.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

_SECRET_KEYS = frozenset({"access_token", "password", "token"})
_SECRET_PATTERNS = [
    # Matrix access tokens (syt_..., mct_...)
    re.compile(r"\b(?:syt|mct)_[A-Za-z0-9_]{10,}"),
    re.compile(r"Bearer\s+[A-Za-z0-9_./-]{20,}"),
]
_REDACTED = "***REDACTED***"

# Third-party loggers that are too chatty at INFO.
_QUIET_LOGGERS = ("nio", "peewee", "markdown_it")


def _scrub_value(value: str) -> str:
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return value


def redact_secrets(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor that masks credentials in event fields."""
    for key, value in event_dict.items():
        if key in _SECRET_KEYS and value:
            event_dict[key] = _REDACTED
        elif isinstance(value, str):
            event_dict[key] = _scrub_value(value)
    return event_dict


def setup_logging(level: str = "info", *, json: bool = False) -> None:
    """Configure stdlib logging and structlog for the bot process."""
    root_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[*shared_processors, structlog.processors.format_exc_info],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            redact_secrets,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(root_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            # must follow format_exc_info to reach rendered tracebacks
            redact_secrets,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
