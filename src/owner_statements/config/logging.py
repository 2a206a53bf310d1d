"""Structured logging for the owner statement engine.

Events are emitted through structlog. Money and dates in event fields are
rendered as plain strings so JSON output never shows ``Decimal('12.50')``.
Operations run inside ``caller_log_context`` so every event they emit
carries the organization, user and operation name.
"""

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Literal

import structlog

from owner_statements.config.settings import get_settings

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]


def render_money_and_dates(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Render ``Decimal`` and date values of an event as strings."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
        elif isinstance(value, date):
            event_dict[key] = value.isoformat()
    return event_dict


def configure_logging(level: LogLevel | None = None, format: LogFormat | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level; defaults to ``LOG_LEVEL``.
        format: ``json`` or ``console``; defaults to ``LOG_FORMAT``.
    """
    settings = get_settings()
    log_level = level or settings.log_level
    log_format = format or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level),
        force=True,
    )
    # SQLAlchemy logs every statement at INFO when echo is on
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        render_money_and_dates,
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def caller_log_context(
    operation: str, org_id: str | None, user_id: str | None
) -> Iterator[None]:
    """Bind the caller and operation to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(
        operation=operation, org_id=org_id, user_id=user_id
    ):
        yield
