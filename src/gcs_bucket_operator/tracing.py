"""OpenTelemetry tracing for reconciliation and Cloud Storage calls.

Tracing is configured through the standard OTel environment variables:

    OTEL_TRACES_ENABLED          "false" turns tracing off (default: true)
    OTEL_SERVICE_NAME            service name (default: gcs-bucket-operator)
    OTEL_SERVICE_VERSION         service version (default: unknown)
    OTEL_EXPORTER_OTLP_ENDPOINT  collector endpoint (default: http://localhost:4317)

Until ``initialize_tracing`` succeeds, ``trace_span`` is a no-op.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode, Tracer

logger = logging.getLogger(__name__)

_tracer: Tracer | None = None


def _build_provider(service_name: str) -> TracerProvider:
    resource = Resource.create({
        "service.name": service_name,
        "service.version": os.getenv("OTEL_SERVICE_VERSION", "unknown"),
    })
    exporter = OTLPSpanExporter(endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"))
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def initialize_tracing(service_name: str = "gcs-bucket-operator") -> None:
    """Install the global tracer provider and exporter."""
    global _tracer

    if os.getenv("OTEL_TRACES_ENABLED", "true").lower() == "false":
        logger.info("Tracing disabled")
        return

    service_name = os.getenv("OTEL_SERVICE_NAME", service_name)
    try:
        trace.set_tracer_provider(_build_provider(service_name))
    except Exception as e:
        # The operator keeps running without traces
        logger.warning(f"Failed to initialize tracing: {e}")
        return
    _tracer = trace.get_tracer(service_name)


def get_tracer() -> Tracer | None:
    return _tracer


@contextmanager
def trace_span(
    name: str,
    kind: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span | None]:
    """Run the body inside a span, recording any exception it raises.

    Yields:
        The active span, or None when tracing is not initialized
    """
    tracer = get_tracer()
    if tracer is None:
        yield None
        return

    attrs = {**(attributes or {}), **({"resource.kind": kind} if kind else {})}
    with tracer.start_as_current_span(name, attributes=attrs) as span:
        try:
            yield span
        except Exception as e:
            if span.is_recording():
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
            raise


def add_span_attribute(key: str, value: Any) -> None:
    """Tag the current span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute(key, value)
