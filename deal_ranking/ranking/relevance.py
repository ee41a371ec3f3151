"""
Personal relevance: cuisine match + distance decay.

Distance decay is market-specific. Dense markets use a short half-life so
nearby deals dominate; everywhere else uses the DEFAULT rules.

  distance = 0.5 ** (miles / half_life)        (0 beyond cutoff or unknown)

  preferences set     → 2/3 * cuisine + 1/3 * distance
  no preferences      → distance                 (cuisine weight moves to distance)

A user who skipped cuisine selection gets no cuisine signal at all, rather
than a neutral one.
"""
import logging
from dataclasses import dataclass
from typing import AbstractSet, Optional

logger = logging.getLogger(__name__)

DEFAULT_MARKET = "DEFAULT"

CUISINE_MATCH_SCORE = 1.0
CUISINE_MISMATCH_SCORE = 0.5

CUISINE_WEIGHT = 2 / 3
DISTANCE_WEIGHT = 1 / 3


@dataclass(frozen=True)
class MarketRules:
    half_life_miles: float
    cutoff_miles: float


MARKET_RULES: dict[str, MarketRules] = {
    "OC": MarketRules(half_life_miles=3.0, cutoff_miles=20.0),
    DEFAULT_MARKET: MarketRules(half_life_miles=5.0, cutoff_miles=31.0),
}


def rules_for_market(market: Optional[str]) -> MarketRules:
    rules = MARKET_RULES.get(market) if market else None
    if rules is None:
        logger.debug("No distance rules for market %r — using %s", market, DEFAULT_MARKET)
        return MARKET_RULES[DEFAULT_MARKET]
    return rules


def distance_score(distance_miles: Optional[float], rules: MarketRules) -> float:
    if distance_miles is None:
        return 0.0
    distance = max(0.0, distance_miles)
    if distance > rules.cutoff_miles:
        return 0.0
    return 0.5 ** (distance / rules.half_life_miles)


def cuisine_score(cuisine_id: Optional[str], preferences: AbstractSet[str]) -> float:
    if cuisine_id is not None and cuisine_id in preferences:
        return CUISINE_MATCH_SCORE
    return CUISINE_MISMATCH_SCORE


def relevance_score(
    cuisine_id: Optional[str],
    preferences: AbstractSet[str],
    distance_miles: Optional[float],
    market: Optional[str],
) -> float:
    distance = distance_score(distance_miles, rules_for_market(market))
    if not preferences:
        return distance
    return CUISINE_WEIGHT * cuisine_score(cuisine_id, preferences) + DISTANCE_WEIGHT * distance
