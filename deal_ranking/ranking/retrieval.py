"""
Stage 1 — candidate retrieval with an adaptive search radius.

Low-density areas legitimately have no live deals close by, so an empty
lookup widens the radius (×2) and tries again, up to a fixed number of
lookups. Errors are different from emptiness: a failed lookup aborts the
request immediately and is never retried with another radius.
"""
import logging
from dataclasses import dataclass, field

from deal_ranking.schemas import Deal

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_MILES = 31.0
MAX_RADIUS_ATTEMPTS = 4


class CandidateRetrievalError(Exception):
    """The nearby-deals lookup failed; the ranking request cannot proceed."""


@dataclass
class RetrievalResult:
    deals: list[Deal] = field(default_factory=list)
    radius_miles: float = DEFAULT_RADIUS_MILES
    attempts: int = 0


async def retrieve_candidates(
    source,
    latitude: float,
    longitude: float,
    *,
    initial_radius: float = DEFAULT_RADIUS_MILES,
    max_attempts: int = MAX_RADIUS_ATTEMPTS,
) -> RetrievalResult:
    """
    Query nearby deals, doubling the radius after every empty result.

    Returns on the first non-empty lookup. If every attempt is empty the
    result carries no deals and the radius of the last attempt.
    """
    radius = initial_radius
    for attempt in range(1, max_attempts + 1):
        try:
            deals = await source.nearby_deals(latitude, longitude, radius)
        except Exception as exc:
            raise CandidateRetrievalError(
                f"nearby_deals failed at {radius:g} miles: {exc}"
            ) from exc

        if deals:
            logger.debug(
                "Found %d candidates within %g miles (attempt %d)",
                len(deals), radius, attempt,
            )
            return RetrievalResult(deals=deals, radius_miles=radius, attempts=attempt)

        if attempt < max_attempts:
            radius *= 2

    logger.info(
        "No deals within %g miles after %d attempts", radius, max_attempts
    )
    return RetrievalResult(deals=[], radius_miles=radius, attempts=max_attempts)
