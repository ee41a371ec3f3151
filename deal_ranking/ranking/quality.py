"""
Quality score — engagement efficiency with empirical-Bayes smoothing.

Step 1  Each interaction contributes weight × decay, decay = 0.5 ** (days / 15).
        Decayed weights > 0 sum into weighted_positives; the rest (≤ 0) into
        weighted_negatives, kept here as its absolute value.
Step 2  observed = positives / (views + |negatives| + 1e-6)
Step 3  Pool prior: m = mean(observed), C = median(evidence),
        evidence = views + |negatives|.
Step 4  smoothed = (C·m + evidence·observed) / (C + evidence)
        raw      = smoothed · log10(1 + views)
Step 5  Min-max normalise raw scores over this pool only.

Scores are request-local rankings: the same deal can score 1.0 in one pool
and 0.0 in another.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

import numpy as np

from deal_ranking.schemas import Deal, Interaction, QualityComponents

logger = logging.getLogger(__name__)

INTERACTION_WEIGHTS: dict[str, float] = {
    "save": 3.0,
    "share": 3.0,
    "click-through": 2.5,
    "click-open": 1.5,
    "upvote": 1.0,
    "downvote": -2.0,
    "report": -3.0,
    "view": 0.0,
}

DECAY_HALF_LIFE_DAYS = 15.0
EPSILON = 1e-6
FLAT_POOL_TOLERANCE = 1e-6

# Only reachable for an empty pool, which the pipeline short-circuits before
# scoring. Kept so quality_scores() is total over its inputs.
DEFAULT_PRIOR_STRENGTH = 50.0


def interaction_weight(interaction_type: Optional[str]) -> float:
    return INTERACTION_WEIGHTS.get(interaction_type or "", 0.0)


def interaction_decay(created_at: datetime, now: datetime) -> float:
    days_ago = (now - created_at).total_seconds() / 86400.0
    if days_ago < 0:
        # clock skew: future events count in full
        return 1.0
    return 0.5 ** (days_ago / DECAY_HALF_LIFE_DAYS)


def aggregate_interactions(
    interactions: Iterable[Interaction], now: datetime
) -> dict[str, QualityComponents]:
    """Fold raw interaction rows into per-deal positive / negative evidence."""
    positives: dict[str, float] = {}
    negatives: dict[str, float] = {}
    for event in interactions:
        value = interaction_weight(event.interaction_type) * interaction_decay(
            event.created_at, now
        )
        positives.setdefault(event.deal_id, 0.0)
        negatives.setdefault(event.deal_id, 0.0)
        if value > 0:
            positives[event.deal_id] += value
        else:
            negatives[event.deal_id] += value

    return {
        deal_id: QualityComponents(
            deal_id=deal_id,
            weighted_positives=positives[deal_id],
            weighted_negatives_abs=abs(negatives[deal_id]),
        )
        for deal_id in positives
    }


def normalize(scores: np.ndarray) -> np.ndarray:
    if scores.size == 0:
        return scores
    low, high = float(scores.min()), float(scores.max())
    if high - low < FLAT_POOL_TOLERANCE:
        return np.zeros_like(scores)
    return (scores - low) / (high - low)


def quality_scores(
    deals: list[Deal], components: dict[str, QualityComponents]
) -> dict[str, float]:
    """Return normalised quality in [0, 1] for every deal in the pool."""
    n = len(deals)
    views = np.zeros(n)
    positives = np.zeros(n)
    negatives = np.zeros(n)
    for i, deal in enumerate(deals):
        views[i] = max(0, deal.view_count)
        comp = components.get(deal.deal_id)
        if comp is not None:
            positives[i] = comp.weighted_positives
            negatives[i] = abs(comp.weighted_negatives_abs)

    evidence = views + negatives
    observed = positives / (evidence + EPSILON)

    if n == 0:
        prior_mean = 0.0
        prior_strength = DEFAULT_PRIOR_STRENGTH
    else:
        prior_mean = float(observed.mean())
        prior_strength = float(np.median(evidence))

    denominator = prior_strength + evidence
    smoothed = np.divide(
        prior_strength * prior_mean + evidence * observed,
        denominator,
        out=np.zeros(n),
        where=denominator != 0,
    )
    raw = smoothed * np.log10(1.0 + views)
    normalized = normalize(raw)

    return {deal.deal_id: float(score) for deal, score in zip(deals, normalized)}


def zero_quality(deals: list[Deal]) -> dict[str, float]:
    """Fallback when quality evidence is unavailable."""
    return {deal.deal_id: 0.0 for deal in deals}
