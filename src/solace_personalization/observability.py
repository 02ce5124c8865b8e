"""Solace-AI Personalization Observability - Structured logging setup."""
from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import Any, Callable

import structlog

from .config import PersonalizationSettings

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

_LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def get_correlation_id() -> str:
    """Get current correlation ID from context, creating one if unset."""
    cid = _correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())
        _correlation_id.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID in context."""
    _correlation_id.set(correlation_id)


def configure_logging(settings: PersonalizationSettings | None = None) -> None:
    """Configure structured logging with structlog."""
    settings = settings or PersonalizationSettings()
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_service_context(settings.service.name, settings.service.env.value),
        _add_correlation_id,
    ]
    if settings.observability.log_format == "json":
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ])
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            _LOG_LEVELS.get(settings.service.log_level, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _add_service_context(service_name: str, environment: str) -> Callable[..., Any]:
    """Processor to add service context to logs."""
    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict["service"] = service_name
        event_dict["environment"] = environment
        return event_dict
    return processor


def _add_correlation_id(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Processor to add correlation ID to logs."""
    cid = _correlation_id.get()
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict
