"""Logging configuration.

Ledger events are structlog key/value records on stderr. Operations on one
account run inside ``account_context``, so every record they emit (including
those from the HTTP collaborators) carries the account owner.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Generator

import structlog
from structlog.typing import EventDict, WrappedLogger

from referral_ledger.settings import settings

# Loud at INFO; only useful when debugging
_NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore")


def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp every record with the application name and environment."""
    event_dict.setdefault("app", settings.app_name)
    event_dict.setdefault("env", settings.env)
    return event_dict


def setup_logging() -> None:
    """Configure structured logging."""

    shared = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        structlog.processors.add_log_level,
    ]

    # Configure processors based on format
    if settings.log_format == "json":
        processors = shared + [
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared + [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Also configure standard logging for SQLAlchemy and httpx
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.log_level),
    )
    if settings.log_level != "DEBUG":
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def account_context(owner_id: int, **values: Any) -> Generator[None, None, None]:
    """Bind ``owner_id`` (and any extra values) to records logged inside the block."""
    with structlog.contextvars.bound_contextvars(owner_id=owner_id, **values):
        yield


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
