"""Structured logging setup for the API and workers."""

import logging
import sys
from collections.abc import Callable, Iterable

import structlog

from core.config import get_settings

LogFilter = Callable[[str], bool]


def pattern_filter(patterns: Iterable[str]) -> LogFilter:
    """Predicate that is True for messages containing any pattern (case-insensitive)."""
    lowered = [p.lower() for p in patterns if p]

    def _matches(message: str) -> bool:
        text = message.lower()
        return any(p in text for p in lowered)

    return _matches


def suppress_matching(predicate: LogFilter):
    """structlog processor dropping events whose rendered text matches ``predicate``."""

    def _processor(logger, method_name, event_dict):
        parts = [str(event_dict.get("event", ""))]
        for key in ("error", "message", "exc_info"):
            if key in event_dict and event_dict[key] is not True:
                parts.append(str(event_dict[key]))
        if predicate(" ".join(parts)):
            raise structlog.DropEvent
        return event_dict

    return _processor


def configure_logging(extra_filter: LogFilter | None = None) -> None:
    """Configure stdlib logging and structlog.

    ``extra_filter`` is OR-ed with the ``log_suppressed_patterns`` setting.
    """
    settings = get_settings()
    predicates = [pattern_filter(settings.log_suppressed_patterns)]
    if extra_filter is not None:
        predicates.append(extra_filter)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=settings.log_level.upper())

    env = settings.app_env.strip().lower()
    renderer = (
        structlog.dev.ConsoleRenderer()
        if env in {"", "local", "dev", "development", "test"}
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            suppress_matching(lambda message: any(p(message) for p in predicates)),
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
