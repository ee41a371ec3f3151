"""
Ranking endpoint — POST /ranking_posts

Body:     { "user_id": "...", "location": { "latitude": .., "longitude": .. } }
Success:  [ { "deal_id": "...", "distance": 1.8 }, ... ]   (index 0 = top)
Failure:  500 { "error": "...", "details": "..." }

An empty array is a normal answer: no deals nearby and everything filtered
out look the same to the client.
"""
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from opentelemetry import trace

from deal_ranking.clients.supabase_client import supabase_client
from deal_ranking.config import settings
from deal_ranking.ranking.pipeline import RankingConfig, RankingPipeline
from deal_ranking.ranking.retrieval import CandidateRetrievalError
from deal_ranking.schemas import ErrorResponse, RankingRequest
from deal_ranking.telemetry import RANKING_LATENCY

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def get_pipeline(
    authorization: Optional[str] = Header(default=None),
) -> RankingPipeline:
    """FastAPI dependency: a pipeline bound to the caller's credentials."""
    return RankingPipeline(
        source=supabase_client.for_request(authorization),
        config=RankingConfig.from_settings(settings),
    )


def _error(error: str, exc: Exception) -> JSONResponse:
    body = ErrorResponse(error=error, details=str(exc))
    return JSONResponse(status_code=500, content=body.model_dump())


@router.post("/ranking_posts")
async def rank_posts(
    request: RankingRequest,
    pipeline: RankingPipeline = Depends(get_pipeline),
):
    start_time = time.perf_counter()

    with tracer.start_as_current_span("rank_posts") as span:
        span.set_attribute("user.id", request.user_id)
        try:
            ranked = await pipeline.rank(
                request.user_id,
                request.location.latitude,
                request.location.longitude,
            )
        except CandidateRetrievalError as exc:
            logger.exception("Candidate retrieval failed (user=%s)", request.user_id)
            return _error("RPC Error", exc)
        except Exception as exc:
            logger.exception("Ranking failed (user=%s)", request.user_id)
            return _error("Failed to rank deals", exc)
        finally:
            latency = time.perf_counter() - start_time
            RANKING_LATENCY.observe(latency)
            span.set_attribute("ranking.latency_ms", round(latency * 1000, 2))

        span.set_attribute("feed.deals_returned", len(ranked))

    exclude = None if pipeline.config.debug_enabled else {"title"}
    return [deal.model_dump(exclude=exclude) for deal in ranked]
