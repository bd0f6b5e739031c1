"""Structured logging for the tracking service (structlog).

Every log line carries the service name and environment. Request-scoped
values (application and tenant ids) are bound through contextvars by the
authentication dependency and cleared by the request middleware.
"""
import logging
import sys
from typing import Any, Callable, Dict

import structlog

from tracking.common.config import Settings, get_settings

Processor = Callable[[Any, str, Dict[str, Any]], Dict[str, Any]]


def service_fields(settings: Settings) -> Processor:
    """Build a processor stamping ``service`` and ``environment`` on each event."""
    fields = {
        "service": settings.service_name,
        "environment": settings.environment,
    }

    def add_service_fields(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in fields.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_service_fields


def setup_logging(settings: Settings = None) -> None:
    """Configure structlog and stdlib logging once at startup."""
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())

    if settings.environment == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            service_fields(settings),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # uvicorn, sqlalchemy and aiokafka log through stdlib logging
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)


def get_logger(name: str) -> Any:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)


def bind_request_context(**values: Any) -> None:
    """Attach key/value pairs to every log line for the current request."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    """Drop request-scoped log context."""
    structlog.contextvars.clear_contextvars()
