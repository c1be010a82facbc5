"""Logging and tracing setup for the maintenance desk API."""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from maintdesk.core.config import Settings

# storage and mail clients log every request at INFO
QUIET_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3", "httpx", "httpcore")

_active_provider: TracerProvider | None = None


def parse_otlp_headers(header_string: str | None) -> dict[str, str]:
    """Turn ``key=value,key2=value2`` into a header mapping, skipping junk."""

    if not header_string:
        return {}
    headers: dict[str, str] = {}
    for item in header_string.split(","):
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            continue
        headers[key.strip()] = value.strip()
    return headers


def logging_config(settings: Settings) -> dict[str, Any]:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    # third-party clients stay at WARNING unless the desk itself is debugging
    client_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"desk": {"format": settings.log_format}},
        "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "desk"}},
        "root": {"handlers": ["console"], "level": logging.WARNING},
        "loggers": {
            "maintdesk": {"level": level},
            "uvicorn": {"level": level},
            **{name: {"level": client_level} for name in QUIET_LOGGERS},
        },
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Apply :func:`logging_config` and return the ``maintdesk`` logger."""

    dictConfig(logging_config(settings))
    return logging.getLogger("maintdesk")


def tracer_resource(settings: Settings) -> Resource:
    return Resource.create(
        {
            "service.name": settings.otel_service_name,
            "deployment.environment": settings.environment,
        }
    )


def span_exporter(settings: Settings) -> OTLPSpanExporter:
    options: dict[str, Any] = {}
    if settings.otel_exporter_otlp_endpoint:
        options["endpoint"] = settings.otel_exporter_otlp_endpoint
    headers = parse_otlp_headers(settings.otel_exporter_otlp_headers)
    if headers:
        options["headers"] = headers
    return OTLPSpanExporter(**options)


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install the desk's tracer provider once; ``None`` when tracing is off or already running."""

    global _active_provider

    if _active_provider is not None or not settings.otel_enabled:
        return None

    provider = TracerProvider(resource=tracer_resource(settings))
    provider.add_span_processor(BatchSpanProcessor(span_exporter(settings)))
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
