"""
Deal ranking pipeline — one instance per request, no state shared across requests.

  Stage 1 │ Candidate Retrieval
  ────────┼──────────────────────────────────────────────────────────────
          │  nearby_deals RPC at 31 miles, doubling on empty results,
          │  at most 4 lookups. Nothing found → empty feed.

  Stage 2 │ Safety Gates (fail-open)
  ────────┼──────────────────────────────────────────────────────────────
          │  Block gate  → drop deals by authors the user blocked.
          │  Report gate → drop deals with ≥2 reports or reported by the user.
          │  Either gate emptying the pool → empty feed.

  Stage 3 │ Scoring
  ────────┼──────────────────────────────────────────────────────────────
          │  relevance  cuisine preference + market distance decay
          │  quality    empirical-Bayes engagement efficiency (pool-normalised)
          │  recency    48h half-life
          │  weighted = (0.3·relevance + 0.4·quality + 0.2·recency) / 0.9

  Stage 4 │ Re-ranking & Response
  ────────┼──────────────────────────────────────────────────────────────
          │  Sort, penalise repeat restaurants, re-sort, move the last deal
          │  to position 4, emit {deal_id, distance}.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Literal, Optional

from opentelemetry import trace

from deal_ranking.config import Settings
from deal_ranking.ranking.gates import REPORT_THRESHOLD, apply_block_gate, apply_report_gate
from deal_ranking.ranking.quality import (
    aggregate_interactions,
    quality_scores,
    zero_quality,
)
from deal_ranking.ranking.relevance import relevance_score
from deal_ranking.ranking.rerank import (
    apply_diversity_penalty,
    inject_randomness,
    sort_by_score,
)
from deal_ranking.ranking.retrieval import (
    DEFAULT_RADIUS_MILES,
    MAX_RADIUS_ATTEMPTS,
    retrieve_candidates,
)
from deal_ranking.ranking.scoring import ScoredDeal, combine_scores, recency_score
from deal_ranking.schemas import Deal, RankedDeal
from deal_ranking.telemetry import (
    CANDIDATES_TOTAL,
    DEPENDENCY_FAILURES_TOTAL,
    EMPTY_FEEDS_TOTAL,
    RADIUS_ATTEMPTS,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RankingConfig:
    debug_enabled: bool = False
    market: str = "OC"
    initial_radius_miles: float = DEFAULT_RADIUS_MILES
    max_radius_attempts: int = MAX_RADIUS_ATTEMPTS
    report_threshold: int = REPORT_THRESHOLD
    quality_aggregation: Literal["server", "local"] = "server"

    def __post_init__(self) -> None:
        if self.quality_aggregation not in ("server", "local"):
            raise ValueError(
                f"quality_aggregation must be 'server' or 'local', "
                f"got {self.quality_aggregation!r}"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RankingConfig":
        return cls(
            debug_enabled=settings.ranking_debug_enabled,
            market=settings.ranking_market,
            initial_radius_miles=settings.ranking_default_radius_miles,
            max_radius_attempts=settings.ranking_max_radius_attempts,
            report_threshold=settings.ranking_report_threshold,
            quality_aggregation=settings.ranking_quality_aggregation,
        )


class RankingPipeline:
    def __init__(
        self,
        source,
        config: RankingConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.source = source
        self.config = config
        self._clock = clock or _utcnow

    def _debug(self, msg: str, *args) -> None:
        if self.config.debug_enabled:
            logger.info(msg, *args)

    async def rank(
        self,
        user_id: str,
        latitude: float,
        longitude: float,
        market: Optional[str] = None,
    ) -> list[RankedDeal]:
        market = market or self.config.market
        now = self._clock()

        # ═══════════════════════════════════════════════════════════════
        #  STAGE 1 — Candidate Retrieval
        # ═══════════════════════════════════════════════════════════════
        with tracer.start_as_current_span("stage1_retrieval") as span:
            retrieval = await retrieve_candidates(
                self.source,
                latitude,
                longitude,
                initial_radius=self.config.initial_radius_miles,
                max_attempts=self.config.max_radius_attempts,
            )
            span.set_attribute("retrieval.attempts", retrieval.attempts)
            span.set_attribute("retrieval.radius_miles", retrieval.radius_miles)
            span.set_attribute("candidates.retrieved", len(retrieval.deals))

        RADIUS_ATTEMPTS.observe(retrieval.attempts)
        CANDIDATES_TOTAL.labels(stage="retrieved").inc(len(retrieval.deals))
        self._debug(
            "Retrieved %d deals within %g miles (%d lookups)",
            len(retrieval.deals), retrieval.radius_miles, retrieval.attempts,
        )
        if not retrieval.deals:
            EMPTY_FEEDS_TOTAL.labels(reason="no_candidates").inc()
            return []

        # ═══════════════════════════════════════════════════════════════
        #  STAGE 2 — Safety Gates
        # ═══════════════════════════════════════════════════════════════
        with tracer.start_as_current_span("stage2_gating") as span:
            blocked = await apply_block_gate(retrieval.deals, user_id, self.source)
            span.set_attribute("gate.block.dropped", len(blocked.dropped))
            span.set_attribute("gate.block.failed_open", blocked.failed_open)
            if not blocked.deals:
                EMPTY_FEEDS_TOTAL.labels(reason="gated_out").inc()
                return []

            reported = await apply_report_gate(
                blocked.deals, user_id, self.source, self.config.report_threshold
            )
            span.set_attribute("gate.report.dropped", len(reported.dropped))
            span.set_attribute("gate.report.failed_open", reported.failed_open)
            if not reported.deals:
                EMPTY_FEEDS_TOTAL.labels(reason="gated_out").inc()
                return []

        deals = reported.deals
        CANDIDATES_TOTAL.labels(stage="gated").inc(len(deals))
        self._debug(
            "Gates kept %d deals (blocked: %d, reported: %d)",
            len(deals), len(blocked.dropped), len(reported.dropped),
        )

        # ═══════════════════════════════════════════════════════════════
        #  STAGE 3 — Scoring
        # ═══════════════════════════════════════════════════════════════
        with tracer.start_as_current_span("stage3_scoring") as span:
            preferences = await self.source.cuisine_preferences(user_id)
            quality = await self._quality(deals, now)

            scored: list[ScoredDeal] = []
            for deal in deals:
                item = ScoredDeal(
                    deal=deal,
                    relevance=relevance_score(
                        deal.cuisine_id, preferences, deal.distance_miles, market
                    ),
                    quality=quality.get(deal.deal_id, 0.0),
                    recency=recency_score(deal.created_at, now),
                )
                item.weighted_score = combine_scores(
                    item.relevance, item.quality, item.recency
                )
                scored.append(item)
            span.set_attribute("scoring.preferences", len(preferences))
            span.set_attribute("scoring.market", market)

        # ═══════════════════════════════════════════════════════════════
        #  STAGE 4 — Re-ranking & Response
        # ═══════════════════════════════════════════════════════════════
        with tracer.start_as_current_span("stage4_rerank"):
            ranked = apply_diversity_penalty(sort_by_score(scored))
            ranked = inject_randomness(sort_by_score(ranked))

        CANDIDATES_TOTAL.labels(stage="ranked").inc(len(ranked))
        if self.config.debug_enabled:
            for position, item in enumerate(ranked):
                logger.info(
                    "#%d %s %r relevance=%.4f quality=%.4f recency=%.4f weighted=%.4f",
                    position, item.deal_id, item.deal.title, item.relevance,
                    item.quality, item.recency, item.weighted_score or 0.0,
                )

        return [
            RankedDeal(
                deal_id=item.deal_id,
                distance=item.deal.distance_miles,
                title=item.deal.title,
            )
            for item in ranked
        ]

    async def _quality(self, deals: list[Deal], now: datetime) -> dict[str, float]:
        """Normalised quality per deal; all zeros if the evidence lookup fails."""
        deal_ids = [d.deal_id for d in deals]
        try:
            if self.config.quality_aggregation == "local":
                interactions = await self.source.interactions(deal_ids)
                components = aggregate_interactions(interactions, now)
            else:
                components = await self.source.quality_components(deal_ids)
        except Exception as exc:
            logger.warning(
                "Quality components lookup failed (%s) — scoring quality as 0", exc
            )
            DEPENDENCY_FAILURES_TOTAL.labels(dependency="quality_components").inc()
            return zero_quality(deals)

        return quality_scores(deals, components)
