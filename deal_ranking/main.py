"""
Deal Ranking Service — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Start the async Supabase HTTP client
  3. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from deal_ranking.clients.supabase_client import supabase_client
from deal_ranking.config import settings
from deal_ranking.routers import ranking
from deal_ranking.telemetry import instrument_app, setup_tracing

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of the Supabase connection."""
    logger.info("Starting Deal Ranking Service (env=%s)", settings.environment)
    await supabase_client.start()
    logger.info(
        "Ranking ready (market=%s, debug=%s, quality=%s)",
        settings.ranking_market,
        settings.ranking_debug_enabled,
        settings.ranking_quality_aggregation,
    )
    yield

    logger.info("Shutting down...")
    await supabase_client.stop()


app = FastAPI(
    title="Deal Ranking Service",
    description=(
        "Location-aware deal feed: adaptive radius retrieval, moderation gates, "
        "relevance / quality / recency scoring and diversity re-ranking."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(ranking.router, tags=["Ranking"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
