"""
Stage 4 — ordering, restaurant diversity and rank perturbation.

  sort_by_score          stable sort, highest weighted_score first
  apply_diversity_penalty  n-th deal from the same restaurant × 0.8 ** (n - 1)
  inject_randomness      move the last deal to position 4 (index 3)

The perturbation is deterministic; it applies to feeds of five or more deals.
"""
from collections import defaultdict

from deal_ranking.ranking.scoring import ScoredDeal

DIVERSITY_DECAY = 0.8
RANDOMNESS_MIN_POOL = 5
RANDOMNESS_POSITION = 3


def sort_by_score(scored: list[ScoredDeal]) -> list[ScoredDeal]:
    return sorted(scored, key=lambda s: s.weighted_score or 0.0, reverse=True)


def apply_diversity_penalty(scored: list[ScoredDeal]) -> list[ScoredDeal]:
    """Penalise repeat restaurants in iteration order; mutates scores in place.

    The first deal seen for a restaurant keeps its score. Deals without a
    restaurant or without a score are left untouched.
    """
    seen: dict[str, int] = defaultdict(int)
    for item in scored:
        restaurant_id = item.restaurant_id
        if not restaurant_id:
            continue
        seen[restaurant_id] += 1
        occurrence = seen[restaurant_id]
        if occurrence > 1 and item.weighted_score is not None:
            item.weighted_score *= DIVERSITY_DECAY ** (occurrence - 1)
    return scored


def inject_randomness(ranked: list[ScoredDeal]) -> list[ScoredDeal]:
    if len(ranked) < RANDOMNESS_MIN_POOL:
        return ranked
    lowest = ranked.pop()
    ranked.insert(RANDOMNESS_POSITION, lowest)
    return ranked
