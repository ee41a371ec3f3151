"""
Stage 2 — safety gates.

Two filters run in order over the retrieved candidates:

  Block gate   — drop deals authored by users the requester has blocked.
  Report gate  — drop deals with too many reports overall, or any deal the
                 requester reported themselves.

Both gates fail open: if their lookup fails the deals pass through unchanged,
the failure is logged and counted, and the request carries on.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from deal_ranking.schemas import Deal
from deal_ranking.telemetry import DEPENDENCY_FAILURES_TOTAL

logger = logging.getLogger(__name__)

REPORT_THRESHOLD = 2


@dataclass
class GateResult:
    deals: list[Deal]
    dropped: list[Deal] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def failed_open(self) -> bool:
        return self.error is not None


def _passthrough(deals: list[Deal], dependency: str, exc: Exception) -> GateResult:
    logger.warning(
        "%s lookup failed (%s) — gate bypassed, %d deals pass unfiltered",
        dependency, exc, len(deals),
    )
    DEPENDENCY_FAILURES_TOTAL.labels(dependency=dependency).inc()
    return GateResult(deals=list(deals), error=exc)


async def apply_block_gate(deals: list[Deal], user_id: str, source) -> GateResult:
    try:
        blocked = await source.blocked_user_ids(user_id)
    except Exception as exc:
        return _passthrough(deals, "blocked_users", exc)

    kept: list[Deal] = []
    dropped: list[Deal] = []
    for deal in deals:
        if deal.author_id is not None and deal.author_id in blocked:
            dropped.append(deal)
        else:
            kept.append(deal)
    return GateResult(deals=kept, dropped=dropped)


async def apply_report_gate(
    deals: list[Deal],
    user_id: str,
    source,
    threshold: int = REPORT_THRESHOLD,
) -> GateResult:
    """Hide deals reported `threshold`+ times, or reported even once by this user."""
    deal_ids = [d.deal_id for d in deals]
    try:
        counts = await source.report_counts(deal_ids)
        own_reports = await source.reported_by_user(deal_ids, user_id)
    except Exception as exc:
        return _passthrough(deals, "report_counts", exc)

    kept: list[Deal] = []
    dropped: list[Deal] = []
    for deal in deals:
        if counts.get(deal.deal_id, 0) >= threshold or deal.deal_id in own_reports:
            dropped.append(deal)
        else:
            kept.append(deal)
    return GateResult(deals=kept, dropped=dropped)
