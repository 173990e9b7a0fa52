"""
Log output for runner processes.

Queue modules log through the standard library with structured ``extra``
fields (``job_id``, ``queue``, ``worker_id``). setup_logging() renders those
records with structlog, so library users who never call it keep their own
logging configuration.
"""

import logging
import sys
from typing import Any

import structlog
from opentelemetry import trace

from docqueue.config import get_settings

# Loggers that are only useful when debugging the store itself
_NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite")


def add_span_ids(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Attach the ids of the active span, if one is recording."""
    context = trace.get_current_span().get_span_context()
    if context.is_valid:
        event_dict["trace_id"] = f"{context.trace_id:032x}"
        event_dict["span_id"] = f"{context.span_id:016x}"
    return event_dict


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.ExtraAdder(),
        add_span_ids,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Route stdlib and structlog records to stdout.

    Args:
        log_level: Level name, defaults to the configured level.
        log_format: "json" or "console", defaults to the configured format.
    """
    settings = get_settings()
    level = logging.getLevelName((log_level or settings.log_level).upper())
    if not isinstance(level, int):
        level = logging.INFO

    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format or settings.log_format),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_context(**values: Any) -> None:
    """
    Add fields to every record logged from the current context.

    Runners bind ``worker_id`` and ``queue`` once at start-up.
    """
    structlog.contextvars.bind_contextvars(**values)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
