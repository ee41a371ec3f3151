"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics: ranking latency, radius attempts, candidate counts,
    degraded dependencies and empty feeds

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
from prometheus_client import Counter, Histogram

from deal_ranking.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
RANKING_LATENCY = Histogram(
    "ranking_latency_seconds",
    "End-to-end latency of POST /ranking_posts",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

RADIUS_ATTEMPTS = Histogram(
    "ranking_radius_attempts",
    "Nearby-deal lookups issued per request before a non-empty result",
    buckets=[1, 2, 3, 4],
)

CANDIDATES_TOTAL = Counter(
    "ranking_candidates_total",
    "Deals seen at each pipeline stage",
    ["stage"],  # 'retrieved' | 'gated' | 'ranked'
)

DEPENDENCY_FAILURES_TOTAL = Counter(
    "ranking_dependency_failures_total",
    "Lookups that failed and were bypassed (fail-open)",
    ["dependency"],  # 'blocked_users' | 'report_counts' | 'quality_components'
)

EMPTY_FEEDS_TOTAL = Counter(
    "ranking_empty_feeds_total",
    "Requests answered with an empty feed",
    ["reason"],  # 'no_candidates' | 'gated_out'
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
        _add_otlp_exporter(provider)

    trace.set_tracer_provider(provider)

    # Supabase calls show up as child spans of the ranking request
    HTTPXClientInstrumentor().instrument()


def _add_otlp_exporter(provider: TracerProvider) -> None:
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
        logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    FastAPIInstrumentor.instrument_app(app)
