"""
Supabase data-access client for the ranking pipeline.

Every collaborator the ranking engine depends on lives behind Supabase's
PostgREST gateway, either as a SQL function (RPC) or as a plain table read:

  POST /rest/v1/rpc/nearby_deals                 { lat, long, radius_miles }
  POST /rest/v1/rpc/get_blocked_user_ids         { p_user_id }
  POST /rest/v1/rpc/get_deal_report_counts       { deal_ids }
  POST /rest/v1/rpc/get_user_cuisine_preferences { p_user_id }
  POST /rest/v1/rpc/get_deal_quality_components  { p_deal_ids }
  GET  /rest/v1/user_report?select=deal_id&reporter_user_id=eq.<uid>&deal_id=in.(…)
  GET  /rest/v1/interaction?select=deal_id,interaction_type,created_at&deal_id=in.(…)

The caller's Authorization header is forwarded untouched so row-level
security applies to the requesting user; when absent we fall back to the
anon key.

This client never swallows errors: every method raises on transport or HTTP
failures. Whether a failure is fatal or fail-open is decided by the pipeline
stage that made the call.
"""
import logging
from typing import Any, Optional

import httpx

from deal_ranking.config import settings
from deal_ranking.schemas import (
    Deal,
    Interaction,
    QualityComponents,
    ReportCount,
)

logger = logging.getLogger(__name__)


def _in_filter(values: list[str]) -> str:
    """PostgREST list filter: in.(a,b,c)"""
    return f"in.({','.join(values)})"


class SupabaseDealSource:
    """Request-scoped view of the Supabase collaborators."""

    def __init__(self, http: httpx.AsyncClient, authorization: str) -> None:
        self._http = http
        self._headers = {
            "apikey": settings.supabase_anon_key,
            "Authorization": authorization,
        }

    async def _rpc(self, name: str, payload: dict[str, Any]) -> list[dict]:
        resp = await self._http.post(
            f"/rest/v1/rpc/{name}", json=payload, headers=self._headers
        )
        resp.raise_for_status()
        return resp.json() or []

    async def _select(self, table: str, params: dict[str, str]) -> list[dict]:
        resp = await self._http.get(
            f"/rest/v1/{table}", params=params, headers=self._headers
        )
        resp.raise_for_status()
        return resp.json() or []

    # ── Stage 1: candidates ────────────────────────────────────────────────

    async def nearby_deals(
        self, latitude: float, longitude: float, radius_miles: float
    ) -> list[Deal]:
        rows = await self._rpc(
            "nearby_deals",
            {"lat": latitude, "long": longitude, "radius_miles": radius_miles},
        )
        return [Deal.model_validate(row) for row in rows if row]

    # ── Stage 2: gates ─────────────────────────────────────────────────────

    async def blocked_user_ids(self, user_id: str) -> set[str]:
        rows = await self._rpc("get_blocked_user_ids", {"p_user_id": user_id})
        return {str(row["user_id"]) for row in rows if row.get("user_id")}

    async def report_counts(self, deal_ids: list[str]) -> dict[str, int]:
        if not deal_ids:
            return {}
        rows = await self._rpc("get_deal_report_counts", {"deal_ids": deal_ids})
        counts = [ReportCount.model_validate(row) for row in rows]
        return {c.deal_id: c.report_count for c in counts}

    async def reported_by_user(self, deal_ids: list[str], user_id: str) -> set[str]:
        if not deal_ids:
            return set()
        rows = await self._select(
            "user_report",
            {
                "select": "deal_id",
                "reporter_user_id": f"eq.{user_id}",
                "deal_id": _in_filter(deal_ids),
            },
        )
        return {str(row["deal_id"]) for row in rows if row.get("deal_id")}

    # ── Stage 3: scoring inputs ────────────────────────────────────────────

    async def cuisine_preferences(self, user_id: str) -> set[str]:
        rows = await self._rpc("get_user_cuisine_preferences", {"p_user_id": user_id})
        return {str(row["cuisine_id"]) for row in rows if row.get("cuisine_id")}

    async def quality_components(
        self, deal_ids: list[str]
    ) -> dict[str, QualityComponents]:
        if not deal_ids:
            return {}
        rows = await self._rpc("get_deal_quality_components", {"p_deal_ids": deal_ids})
        components = [QualityComponents.model_validate(row) for row in rows]
        return {c.deal_id: c for c in components}

    async def interactions(self, deal_ids: list[str]) -> list[Interaction]:
        if not deal_ids:
            return []
        rows = await self._select(
            "interaction",
            {
                "select": "deal_id,interaction_type,created_at",
                "deal_id": _in_filter(deal_ids),
            },
        )
        return [Interaction.model_validate(row) for row in rows]


class SupabaseClient:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._http: Optional[httpx.AsyncClient] = None
        self._transport = transport

    async def start(self) -> None:
        self._http = httpx.AsyncClient(
            base_url=settings.supabase_url,
            timeout=settings.supabase_timeout_seconds,
            transport=self._transport,
        )
        logger.info("Supabase client ready → %s", settings.supabase_url)

    async def stop(self) -> None:
        if self._http:
            await self._http.aclose()

    def for_request(self, authorization: Optional[str] = None) -> SupabaseDealSource:
        """Bind the caller's bearer token to a data source for one request."""
        if self._http is None:
            raise RuntimeError("Supabase client not started — call start() at startup")
        return SupabaseDealSource(
            self._http, authorization or f"Bearer {settings.supabase_anon_key}"
        )


# Singleton — started/stopped in app lifespan (main.py)
supabase_client = SupabaseClient()
