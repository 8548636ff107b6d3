"""
Telemetry configuration (Metrics & Tracing).
Sets up Prometheus instrumentation and OpenTelemetry, and records
feed degradations so operators can tell intentional unpersonalized
content apart from broken personalization.
"""
import logging
from typing import Optional

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

from clipfeed.config import Settings, get_settings

logger = logging.getLogger(__name__)

FEED_DEGRADATIONS = Counter(
    "clipfeed_degradations_total",
    "Feed requests served with a signal zeroed or a policy waived",
    ["signal", "reason"],
)

FEED_REQUESTS = Counter(
    "clipfeed_feed_requests_total",
    "Feed requests by serving path",
    ["path"],
)


def record_degradation(
    signal: str,
    reason: str,
    viewer_id: Optional[str] = None,
) -> None:
    """Log and count one recoverable degradation."""
    logger.warning(
        f"Feed degraded: signal={signal}, reason={reason}",
        extra={"signal": signal, "reason": reason, "viewer_id": viewer_id},
    )
    FEED_DEGRADATIONS.labels(signal=signal, reason=reason).inc()


def record_feed_path(path: str) -> None:
    FEED_REQUESTS.labels(path=path).inc()


def setup_telemetry(app: FastAPI) -> None:
    """Expose `/metrics` and, when enabled, export traces over OTLP."""
    settings = get_settings()
    if settings.ENABLE_PROMETHEUS:
        _setup_metrics(app)
    if settings.ENABLE_OTEL:
        _setup_tracing(app, settings)


def _setup_metrics(app: FastAPI) -> None:
    # ENABLE_METRICS=false in the environment turns instrumentation off at runtime
    Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        env_var_name="ENABLE_METRICS",
        should_instrument_requests_inprogress=True,
        inprogress_name="clipfeed_requests_inprogress",
        inprogress_labels=True,
        excluded_handlers=["/metrics", "/health.*"],
    ).instrument(app).expose(app, include_in_schema=False)


def _setup_tracing(app: FastAPI, settings: Settings) -> None:
    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.APP_NAME,
                "service.version": settings.APP_VERSION,
                "deployment.environment": "development" if settings.DEBUG else "production",
            }
        )
    )
    # Endpoint from OTEL_EXPORTER_OTLP_ENDPOINT, localhost:4317 otherwise
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls="health,metrics")
    logger.info("OpenTelemetry tracing enabled")
