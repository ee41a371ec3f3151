"""Pytest fixtures for tests."""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

# Keep the OTLP exporter out of test runs; settings are read at import time.
os.environ.setdefault("OTEL_ENABLED", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from deal_ranking.main import app
from deal_ranking.ranking.pipeline import RankingConfig, RankingPipeline
from deal_ranking.routers.ranking import get_pipeline
from deal_ranking.schemas import Deal, Interaction, QualityComponents

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_deal(
    deal_id: str,
    *,
    author_id: Optional[str] = "author-1",
    restaurant_id: Optional[str] = None,
    cuisine_id: Optional[str] = None,
    distance: Optional[float] = 1.0,
    views: int = 0,
    age_hours: Optional[float] = 0.0,
    title: Optional[str] = None,
) -> Deal:
    created_at = NOW - timedelta(hours=age_hours) if age_hours is not None else None
    return Deal.model_validate(
        {
            "deal_id": deal_id,
            "created_at": created_at,
            "distance_miles": distance,
            "view_count": views,
            "deal_template": {
                "user_id": author_id,
                "restaurant_id": restaurant_id if restaurant_id is not None else f"r-{deal_id}",
                "cuisine_id": cuisine_id,
                "title": title or f"Deal {deal_id}",
            },
        }
    )


class FakeDealSource:
    """In-memory stand-in for the Supabase collaborators.

    `deals_by_radius` maps a radius to the deals visible at that radius; any
    radius not listed returns nothing. Set `fail` to a collaborator method name
    (or a set of them) to make that lookup raise.
    """

    def __init__(
        self,
        deals_by_radius: Optional[dict[float, list[Deal]]] = None,
        *,
        blocked: Optional[set[str]] = None,
        report_counts: Optional[dict[str, int]] = None,
        own_reports: Optional[set[str]] = None,
        preferences: Optional[set[str]] = None,
        components: Optional[dict[str, QualityComponents]] = None,
        interactions: Optional[list[Interaction]] = None,
        fail: Optional[set[str]] = None,
    ) -> None:
        self.deals_by_radius = deals_by_radius or {}
        self.blocked = blocked or set()
        self._report_counts = report_counts or {}
        self.own_reports = own_reports or set()
        self.preferences = preferences or set()
        self.components = components or {}
        self._interactions = interactions or []
        self.fail = fail or set()
        self.calls: list[tuple] = []

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise RuntimeError(f"{name} unavailable")

    def calls_to(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def nearby_deals(self, latitude, longitude, radius_miles):
        self._record("nearby_deals", latitude, longitude, radius_miles)
        return list(self.deals_by_radius.get(radius_miles, []))

    async def blocked_user_ids(self, user_id):
        self._record("blocked_user_ids", user_id)
        return set(self.blocked)

    async def report_counts(self, deal_ids):
        self._record("report_counts", tuple(deal_ids))
        return {d: c for d, c in self._report_counts.items() if d in deal_ids}

    async def reported_by_user(self, deal_ids, user_id):
        self._record("reported_by_user", tuple(deal_ids), user_id)
        return {d for d in self.own_reports if d in deal_ids}

    async def cuisine_preferences(self, user_id):
        self._record("cuisine_preferences", user_id)
        return set(self.preferences)

    async def quality_components(self, deal_ids):
        self._record("quality_components", tuple(deal_ids))
        return {d: c for d, c in self.components.items() if d in deal_ids}

    async def interactions(self, deal_ids):
        self._record("interactions", tuple(deal_ids))
        return [i for i in self._interactions if i.deal_id in deal_ids]


@pytest.fixture
def config():
    return RankingConfig(market="DEFAULT")


@pytest.fixture
def make_pipeline(config):
    def _make(source, cfg: Optional[RankingConfig] = None) -> RankingPipeline:
        return RankingPipeline(source, cfg or config, clock=lambda: NOW)

    return _make


@pytest_asyncio.fixture
async def api_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.pop(get_pipeline, None)
