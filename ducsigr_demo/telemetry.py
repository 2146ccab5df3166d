# telemetry.py
"""
Tracing setup for OpenTelemetry.
Call init_tracing() once at startup, before any outbound httpx client is
created, so spans for incoming and outgoing HTTP calls reach the ingest.
"""

import logging
from typing import Dict

# Core OpenTelemetry imports
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ducsigr_demo.config import Settings

logger = logging.getLogger(__name__)


def _parse_headers(raw: str | None) -> Dict[str, str]:
    """
    Helper: turns a string like:
        "authorization=Bearer mytoken,env=prod"
    into:
        {"authorization": "Bearer mytoken", "env": "prod"}
    Used for OTEL_EXPORTER_OTLP_HEADERS if the ingest needs extra headers.
    """
    if not raw:
        return {}
    pairs = [p.strip() for p in raw.split(",") if p.strip()]
    out: Dict[str, str] = {}
    for p in pairs:
        if "=" in p:
            k, v = p.split("=", 1)
            out[k.strip()] = v.strip()
    return out


def build_resource(settings: Settings) -> Resource:
    """The "who is sending telemetry" part, shared by traces and the SDK observer."""
    return Resource.create({
        "service.name": settings.service_name,
        "service.version": settings.service_version,
    })


def exporter_headers(settings: Settings) -> Dict[str, str]:
    headers = _parse_headers(settings.otlp_headers)
    if settings.api_key:
        headers["x-api-key"] = settings.api_key
    return headers


def init_tracing(settings: Settings) -> TracerProvider:
    """
    Initialize OpenTelemetry tracing with an OTLP/HTTP exporter pointed at
    the ingest's /v1/traces and register it as the global provider.
    Also instruments httpx so calls to the external APIs show up as child spans.
    """
    provider = TracerProvider(resource=build_resource(settings))
    trace.set_tracer_provider(provider)

    exporter = OTLPSpanExporter(
        endpoint=settings.traces_url,
        headers=exporter_headers(settings) or None,
        timeout=10,
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))

    HTTPXClientInstrumentor().instrument(tracer_provider=provider)

    # One span at startup so the ingest shows the service right away
    tracer = trace.get_tracer("startup")
    with tracer.start_as_current_span("otlp_init_ok"):
        pass

    logger.info(
        "OpenTelemetry initialized",
        extra={"otel_service": settings.service_name, "tracesUrl": settings.traces_url},
    )
    return provider


def shutdown_tracing(provider: TracerProvider) -> None:
    logger.info("Shutting down OpenTelemetry SDK")
    HTTPXClientInstrumentor().uninstrument()
    provider.shutdown()
