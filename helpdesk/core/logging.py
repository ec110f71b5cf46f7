"""Logging and tracing setup for the helpdesk service.

Every log record is stamped with the deployment environment, and the ticket
engine and store log under ``helpdesk.tickets`` with a level that can be
tuned apart from the rest of the application.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from helpdesk import __version__
from helpdesk.core.config import Settings

TICKETS_LOGGER = "helpdesk.tickets"

_active_provider: TracerProvider | None = None


class EnvironmentFilter(logging.Filter):
    """Attach ``record.environment`` so formats can reference it."""

    def __init__(self, environment: str) -> None:
        super().__init__()
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.environment = self.environment
        return True


def _level(name: str | None, default: int) -> int:
    if not name:
        return default
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else default


def _parse_headers(header_string: str | None) -> dict[str, str]:
    """Parse ``key=value`` pairs separated by commas, skipping malformed items."""

    headers: dict[str, str] = {}
    for item in (header_string or "").split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


def logging_config(settings: Settings) -> dict[str, Any]:
    """Build the ``dictConfig`` mapping for ``settings``."""

    app_level = _level(settings.log_level, logging.INFO)
    tickets_level = _level(settings.tickets_log_level, app_level)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "environment": {"()": EnvironmentFilter, "environment": settings.environment},
        },
        "formatters": {
            "default": {"format": settings.log_format},
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["environment"],
            }
        },
        "loggers": {
            "helpdesk": {"level": app_level},
            TICKETS_LOGGER: {"level": tickets_level},
            settings.app_name: {"level": app_level},
        },
        "root": {"handlers": ["default"], "level": app_level},
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Apply the logging configuration and return the application logger."""

    dictConfig(logging_config(settings))
    logger = logging.getLogger(settings.app_name)
    logger.info("Logging configured for %s (%s)", settings.app_name, settings.environment)
    return logger


def build_resource(settings: Settings) -> Resource:
    return Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": __version__,
            "deployment.environment": settings.environment,
        }
    )


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP-exporting tracer provider when tracing is enabled."""

    global _active_provider

    if _active_provider is not None or not settings.otel_enabled:
        return None

    provider = TracerProvider(resource=build_resource(settings))
    exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint or None,
        headers=_parse_headers(settings.otel_exporter_otlp_headers) or None,
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _active_provider = provider
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    global _active_provider

    if provider is None:
        return
    provider.shutdown()
    if provider is _active_provider:
        _active_provider = None
