"""OpenTelemetry wiring for the API process and backup runs."""

from __future__ import annotations

from typing import Dict

from fastapi import FastAPI
from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, Sampler, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes

from patientrec_api.core.settings import Settings

BACKUP_TRACER_NAME = "patientrec_api.backups"

_PROVIDER: TracerProvider | None = None


def parse_otlp_headers(raw: str | None) -> Dict[str, str] | None:
    """Parse ``key=value,key2=value2`` as used by ``OTEL_EXPORTER_OTLP_HEADERS``."""

    if not raw:
        return None
    headers: Dict[str, str] = {}
    for pair in raw.split(","):
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            continue
        headers[key.strip()] = value.strip()
    return headers or None


def build_exporter(settings: Settings) -> SpanExporter:
    if settings.otel_exporter_otlp_endpoint:
        return OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            headers=parse_otlp_headers(settings.otel_exporter_otlp_headers),
        )
    return ConsoleSpanExporter()


def build_sampler(settings: Settings) -> Sampler:
    # Child spans of backup runs follow the run's decision.
    return ParentBased(TraceIdRatioBased(settings.tracing_sample_ratio))


def configure_tracing(
    app: FastAPI,
    *,
    settings: Settings,
    service_name: str,
    service_version: str,
) -> TracerProvider | None:
    """Install the process tracer provider once and instrument ``app``.

    Returns ``None`` when tracing is disabled; backup-run spans then go to the
    no-op provider.
    """

    global _PROVIDER

    if not settings.tracing_enabled:
        logger.info("Tracing disabled", reason="tracing_enabled is false")
        return None

    if _PROVIDER is None:
        resource = Resource.create(
            {
                ResourceAttributes.SERVICE_NAME: service_name,
                ResourceAttributes.SERVICE_VERSION: service_version,
                ResourceAttributes.DEPLOYMENT_ENVIRONMENT: settings.environment,
            }
        )
        provider = TracerProvider(resource=resource, sampler=build_sampler(settings))
        provider.add_span_processor(BatchSpanProcessor(build_exporter(settings)))
        trace.set_tracer_provider(provider)
        LoggingInstrumentor().instrument(set_logging_format=False)
        _PROVIDER = provider
        logger.info(
            "Tracing configured",
            exporter="otlp" if settings.otel_exporter_otlp_endpoint else "console",
            sample_ratio=settings.tracing_sample_ratio,
        )

    FastAPIInstrumentor.instrument_app(app, tracer_provider=_PROVIDER)
    return _PROVIDER


def get_backup_tracer() -> trace.Tracer:
    return trace.get_tracer(BACKUP_TRACER_NAME)


__all__ = [
    "BACKUP_TRACER_NAME",
    "build_exporter",
    "build_sampler",
    "configure_tracing",
    "get_backup_tracer",
    "parse_otlp_headers",
]
