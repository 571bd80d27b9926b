"""Logging and tracing setup for the service desk API."""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from servicedesk import __version__
from servicedesk.core.config import Settings

APP_LOGGER = "servicedesk"

_TRACER_INITIALISED = False


def parse_headers(header_string: str | None) -> dict[str, str]:
    """Parse ``key=value`` pairs separated by commas, skipping malformed items."""

    if not header_string:
        return {}
    headers: dict[str, str] = {}
    for item in header_string.split(","):
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            continue
        headers[key.strip()] = value.strip()
    return headers


def _level(name: str, default: int = logging.INFO) -> int:
    return getattr(logging, name.upper(), default)


def logging_config(settings: Settings) -> dict[str, Any]:
    """Build the ``dictConfig`` payload for the API process.

    The ticket engine and storage layers get their own levels so audit noise
    can be tuned without touching the rest of the application; SQLAlchemy's
    engine logger only emits statements when ``sql_echo`` is set.
    """

    level = _level(settings.log_level)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": settings.log_format}},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": logging.NOTSET,
            }
        },
        "loggers": {
            APP_LOGGER: {"level": level},
            f"{APP_LOGGER}.tickets": {"level": _level(settings.tickets_log_level, level)},
            f"{APP_LOGGER}.storage": {"level": _level(settings.storage_log_level, level)},
            "sqlalchemy.engine": {"level": logging.INFO if settings.sql_echo else logging.WARNING},
        },
        "root": {"handlers": ["default"], "level": level},
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Apply :func:`logging_config` and return the application logger."""

    dictConfig(logging_config(settings))
    return logging.getLogger(APP_LOGGER)


def _span_exporter(settings: Settings) -> OTLPSpanExporter:
    kwargs: dict[str, Any] = {}
    if settings.otel_exporter_otlp_endpoint:
        kwargs["endpoint"] = settings.otel_exporter_otlp_endpoint
    headers = parse_headers(settings.otel_exporter_otlp_headers)
    if headers:
        kwargs["headers"] = headers
    return OTLPSpanExporter(**kwargs)


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP exporting tracer provider when tracing is enabled.

    Ticket operations open one span each (``tickets.<operation>``); the
    resource tags them with the service version and deployment environment.
    """

    global _TRACER_INITIALISED

    if _TRACER_INITIALISED or not settings.otel_enabled:
        return None

    resource = Resource(
        attributes={
            "service.name": settings.otel_service_name,
            "service.version": __version__,
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(_span_exporter(settings)))
    trace.set_tracer_provider(provider)
    _TRACER_INITIALISED = True
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    global _TRACER_INITIALISED

    if provider is None:
        return
    provider.shutdown()
    _TRACER_INITIALISED = False
