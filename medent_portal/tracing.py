"""
OpenTelemetry instrumentation for the portal.

Incoming requests and calls to the financing API are traced. Spans started
while a request is being handled carry its request id and, for signed-in
staff, the user id and role, so a slow or failing API call can be traced
back to the session that made it.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import Span, SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .config import settings
from .logging_config import get_request_id
from .session import get_current_session


def request_span_attributes() -> Dict[str, Any]:
    """Attributes of the request and session currently being handled."""
    attributes: Dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        attributes["portal.request_id"] = request_id

    session = get_current_session()
    if session is not None:
        attributes["portal.authenticated"] = session.is_authenticated
        if session.user is not None:
            attributes["enduser.id"] = session.user.id
            attributes["enduser.role"] = session.user.role

    return attributes


class RequestContextSpanProcessor(SpanProcessor):
    """Tags every new span with ``request_span_attributes()``."""

    def on_start(self, span: Span, parent_context: Optional[Context] = None) -> None:
        for key, value in request_span_attributes().items():
            span.set_attribute(key, value)


def configure_opentelemetry(
    service_name: str,
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    enable_tracing: bool = True,
) -> Optional[TracerProvider]:
    """
    Configure OpenTelemetry for the portal.

    Args:
        service_name: Name reported on every span
        service_version: Version of the portal
        otlp_endpoint: OTLP gRPC endpoint (defaults to ``OTEL_EXPORTER_OTLP_ENDPOINT``)
        enable_tracing: Whether to enable tracing (disabled in DEBUG)

    Returns:
        The installed tracer provider, or None when tracing is disabled
    """
    if not enable_tracing:
        return None

    resource = Resource.create(
        {
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
            "deployment.environment": settings.ENVIRONMENT,
            "portal.api_base_url": settings.API_BASE_URL,
        }
    )

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(RequestContextSpanProcessor())
    tracer_provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(
                endpoint=otlp_endpoint or settings.OTEL_EXPORTER_OTLP_ENDPOINT,
                insecure=True,
            )
        )
    )
    trace.set_tracer_provider(tracer_provider)

    HTTPXClientInstrumentor().instrument()
    return tracer_provider


def instrument_fastapi(app: FastAPI, excluded_urls: Optional[str] = None) -> None:
    """
    Instrument the portal's routes.

    Args:
        app: FastAPI application instance
        excluded_urls: Comma-separated URL patterns left untraced
            (defaults to ``TRACING_EXCLUDED_URLS``)
    """
    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls=excluded_urls or settings.TRACING_EXCLUDED_URLS,
        tracer_provider=trace.get_tracer_provider(),
    )
