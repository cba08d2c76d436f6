from __future__ import annotations

import logging
import sys
from typing import Any, Optional

import structlog

from leadcrm.core.config import Settings, settings as default_settings

SERVICE_NAME = "leadcrm"


def _add_service(logger: Any, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_structlog(settings: Optional[Settings] = None) -> None:
    """Route structlog through stdlib logging at the configured level.

    ``LOG_FORMAT`` picks the renderer: ``json`` for shipping, ``console``
    for a coloured terminal, ``plain`` for the same without colour.
    """
    settings = settings or default_settings

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=settings.log_format == "console")

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stdout)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _add_service,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_structlog_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> None:
    """Start a fresh log context for a request; ``None`` just clears it."""
    structlog.contextvars.clear_contextvars()
    if request_id:
        structlog.contextvars.bind_contextvars(request_id=request_id)


def bind_caller(role: str, user_id: Optional[int] = None, provider_id: Optional[int] = None) -> None:
    """Attach the authenticated caller to every later log line of the request."""
    structlog.contextvars.bind_contextvars(role=role, user_id=user_id, provider_id=provider_id)
