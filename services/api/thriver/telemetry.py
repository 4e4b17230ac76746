"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics: feed load latency/outcomes, navigation steps,
    stale loads discarded, open feed sessions

Both are initialised once at startup and injected into FastAPI via middleware.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from prometheus_client import Counter, Gauge, Histogram

from thriver.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
FEED_LOAD_LATENCY = Histogram(
    "feed_load_latency_seconds",
    "Latency of one feed load (candidate ids + record resolution)",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

FEED_LOADS_TOTAL = Counter(
    "feed_loads_total",
    "Feed loads by outcome",
    ["outcome"],  # 'applied' | 'stale' | 'failed'
)

FEED_UNITS_BUILT = Histogram(
    "feed_units_built",
    "Number of display units per built feed sequence",
    buckets=[0, 5, 10, 25, 50, 75, 100],
)

NAV_STEPS_TOTAL = Counter(
    "feed_nav_steps_total",
    "Navigation step requests by result",
    ["result"],  # 'accepted' | 'clamped' | 'dropped' | 'ignored'
)

FEED_SESSIONS_OPEN = Gauge(
    "feed_sessions_open",
    "Currently open feed sessions",
)

BACKEND_ERRORS_TOTAL = Counter(
    "backend_errors_total",
    "Failed calls to the managed backend",
    ["operation"],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing() -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    if settings.otel_enabled:
        try:
            otlp_exporter = OTLPSpanExporter(
                endpoint=settings.otel_exporter_otlp_endpoint,
                insecure=True,
            )
            provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
            logger.info(
                "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
            )
        except Exception as exc:
            logger.warning("Could not connect to OTLP exporter: %s - traces disabled", exc)

    trace.set_tracer_provider(provider)

    # Backend calls all go through httpx
    HTTPXClientInstrumentor().instrument()


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    FastAPIInstrumentor.instrument_app(app)
