"""
Spans around queue operations.

Library code only touches the OpenTelemetry API, so spans are no-ops until a
runner process calls setup_tracing() (or the host installs its own provider).
"""

import logging
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Tracer

from docqueue import __version__
from docqueue.config import Settings, get_settings

logger = logging.getLogger(__name__)

_tracer: Tracer | None = None


def _build_provider(settings: Settings, console: bool) -> TracerProvider:
    provider = TracerProvider(
        resource=Resource.create(
            {
                SERVICE_NAME: settings.otel_service_name,
                SERVICE_VERSION: __version__,
            }
        )
    )

    exporters: list[Any] = []
    try:
        exporters.append(
            OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint, insecure=True)
        )
    except Exception:
        logger.warning(
            "OTLP exporter unavailable, spans are not exported",
            extra={"endpoint": settings.otel_exporter_otlp_endpoint},
        )
    if console:
        exporters.append(ConsoleSpanExporter())

    for exporter in exporters:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def setup_tracing(enable_console_export: bool = False) -> Tracer:
    """
    Install an SDK tracer provider exporting over OTLP.

    Meant for runner processes; call once at start-up.

    Args:
        enable_console_export: Also print finished spans to stdout.

    Returns:
        Tracer: The queue tracer.
    """
    global _tracer

    settings = get_settings()
    trace.set_tracer_provider(_build_provider(settings, enable_console_export))
    _tracer = trace.get_tracer(settings.otel_service_name, __version__)
    return _tracer


def get_tracer() -> Tracer:
    """Return the queue tracer, bound to the global provider when not set up."""
    if _tracer is not None:
        return _tracer
    return trace.get_tracer(get_settings().otel_service_name, __version__)


def create_span(name: str, **attributes: Any) -> Any:
    """
    Open ``name`` as the current span.

    Args:
        name: Span name, e.g. ``queue.get``.
        **attributes: Span attributes; None values are left out and the
            rest are stringified.

    Returns:
        A context manager yielding the span.
    """
    return get_tracer().start_as_current_span(
        name,
        attributes={key: str(value) for key, value in attributes.items() if value is not None},
    )
