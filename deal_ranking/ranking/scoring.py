"""Per-request scoring envelope, recency decay and the weighted combination."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from deal_ranking.schemas import Deal

RECENCY_HALF_LIFE_HOURS = 48.0

RELEVANCE_WEIGHT = 0.3
QUALITY_WEIGHT = 0.4
RECENCY_WEIGHT = 0.2
# Sum of the three weights; the combination is rescaled by it to [0, 1].
WEIGHT_SUM = 0.9


@dataclass
class ScoredDeal:
    """Wraps a read-only Deal with the scores computed for this request."""

    deal: Deal
    relevance: float = 0.0
    quality: float = 0.0
    recency: float = 0.0
    weighted_score: Optional[float] = None

    @property
    def deal_id(self) -> str:
        return self.deal.deal_id

    @property
    def restaurant_id(self) -> Optional[str]:
        return self.deal.restaurant_id


def recency_score(created_at: Optional[datetime], now: datetime) -> float:
    if created_at is None:
        return 0.0
    age_hours = max(0.0, (now - created_at).total_seconds() / 3600.0)
    return 0.5 ** (age_hours / RECENCY_HALF_LIFE_HOURS)


def combine_scores(relevance: float, quality: float, recency: float) -> float:
    return (
        relevance * RELEVANCE_WEIGHT
        + quality * QUALITY_WEIGHT
        + recency * RECENCY_WEIGHT
    ) / WEIGHT_SUM
