"""Tests for the Supabase collaborator client against a mock transport."""

import json

import httpx
import pytest

from deal_ranking.clients.supabase_client import SupabaseClient


class Recorder:
    """MockTransport handler that answers by path and keeps every request."""

    def __init__(self, routes: dict[str, object], status_code: int = 200) -> None:
        self.routes = routes
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.routes.get(request.url.path, []))


async def started(recorder: Recorder) -> SupabaseClient:
    client = SupabaseClient(transport=httpx.MockTransport(recorder))
    await client.start()
    return client


NEARBY_ROW = {
    "deal_id": "d1",
    "template_id": "t1",
    "created_at": "2026-02-28T18:30:00+00:00",
    "is_anonymous": False,
    "distance_miles": 2.4,
    "view_count": 17,
    "deal_template": {
        "template_id": "t1",
        "user_id": "u9",
        "cuisine_id": "c-mex",
        "restaurant_id": "r1",
        "title": "Taco Tuesday",
        "description": None,
    },
}


class TestSupabaseDealSource:
    async def test_nearby_deals_payload_and_parsing(self):
        recorder = Recorder({"/rest/v1/rpc/nearby_deals": [NEARBY_ROW]})
        client = await started(recorder)

        deals = await client.for_request("Bearer user-jwt").nearby_deals(33.6, -117.8, 31.0)
        await client.stop()

        request = recorder.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {"lat": 33.6, "long": -117.8, "radius_miles": 31.0}
        assert request.headers["Authorization"] == "Bearer user-jwt"
        assert deals[0].deal_id == "d1"
        assert deals[0].author_id == "u9"
        assert deals[0].restaurant_id == "r1"
        assert deals[0].view_count == 17
        assert deals[0].created_at.tzinfo is not None

    async def test_missing_template_is_tolerated(self):
        row = {"deal_id": "d2", "deal_template": None}
        client = await started(Recorder({"/rest/v1/rpc/nearby_deals": [row]}))

        deals = await client.for_request().nearby_deals(0, 0, 31.0)
        await client.stop()

        assert deals[0].restaurant_id is None
        assert deals[0].distance_miles is None

    async def test_anon_key_used_without_caller_token(self):
        recorder = Recorder({})
        client = await started(recorder)

        await client.for_request(None).blocked_user_ids("u1")
        await client.stop()

        assert recorder.requests[0].headers["Authorization"].startswith("Bearer")

    async def test_gate_and_scoring_lookups(self):
        recorder = Recorder(
            {
                "/rest/v1/rpc/get_blocked_user_ids": [{"user_id": "u2"}, {"user_id": "u3"}],
                "/rest/v1/rpc/get_deal_report_counts": [{"deal_id": "d1", "report_count": 2}],
                "/rest/v1/user_report": [{"deal_id": "d2"}],
                "/rest/v1/rpc/get_user_cuisine_preferences": [{"cuisine_id": "c-mex"}],
                "/rest/v1/rpc/get_deal_quality_components": [
                    {"deal_id": "d1", "weighted_positives": 4.5, "weighted_negatives_abs": 1.0}
                ],
                "/rest/v1/interaction": [
                    {
                        "deal_id": "d1",
                        "interaction_type": "save",
                        "created_at": "2026-02-27T10:00:00Z",
                    }
                ],
            }
        )
        client = await started(recorder)
        source = client.for_request("Bearer t")

        assert await source.blocked_user_ids("u1") == {"u2", "u3"}
        assert await source.report_counts(["d1", "d2"]) == {"d1": 2}
        assert await source.reported_by_user(["d1", "d2"], "u1") == {"d2"}
        assert await source.cuisine_preferences("u1") == {"c-mex"}
        components = await source.quality_components(["d1"])
        interactions = await source.interactions(["d1"])
        await client.stop()

        assert components["d1"].weighted_positives == 4.5
        assert interactions[0].interaction_type == "save"

        report_query = recorder.requests[2].url.params
        assert report_query["reporter_user_id"] == "eq.u1"
        assert report_query["deal_id"] == "in.(d1,d2)"
        assert json.loads(recorder.requests[4].content) == {"p_deal_ids": ["d1"]}

    async def test_empty_id_lists_skip_the_network(self):
        recorder = Recorder({})
        client = await started(recorder)
        source = client.for_request()

        assert await source.report_counts([]) == {}
        assert await source.reported_by_user([], "u1") == set()
        assert await source.quality_components([]) == {}
        assert await source.interactions([]) == []
        await client.stop()

        assert recorder.requests == []

    async def test_http_errors_raise(self):
        client = await started(Recorder({}, status_code=503))

        with pytest.raises(httpx.HTTPStatusError):
            await client.for_request().nearby_deals(0, 0, 31.0)
        await client.stop()


def test_for_request_requires_start():
    with pytest.raises(RuntimeError):
        SupabaseClient().for_request("Bearer t")
