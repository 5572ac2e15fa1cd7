import json

import httpx
import pytest

from menu_optimizer.client.api_client import ApiClientError, OptimizerApiClient
from menu_optimizer.schemas import OptimizationCriteria, RevisionCandidate, SuggestionCandidate

REVISION = {
    "candidate_id": "c-1",
    "restaurant_id": "resto-1",
    "status": "pending",
    "kind": "revision",
    "item_id": "item-1",
    "original_name": "Burger",
    "proposed_name": "Burger du chef",
}
SUGGESTION = {
    "candidate_id": "c-2",
    "restaurant_id": "resto-1",
    "status": "pending",
    "kind": "suggestion",
    "name": "Bowl",
    "estimated_price": 12.0,
}


def _client(handler) -> OptimizerApiClient:
    return OptimizerApiClient(
        "https://api.test",
        "token-123",
        "resto-1",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_list_pending_candidates_parses_both_kinds() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[REVISION, SUGGESTION])

    candidates = await _client(handler).list_pending_candidates("revise-existing")

    assert isinstance(candidates[0], RevisionCandidate)
    assert isinstance(candidates[1], SuggestionCandidate)
    assert seen[0].url.path == "/api/optimizations/revise-existing/pending"
    assert seen[0].headers["authorization"] == "Bearer token-123"
    assert seen[0].headers["x-restaurant-id"] == "resto-1"


@pytest.mark.asyncio
async def test_submit_optimization_sends_criteria() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(
            202,
            json={
                "request_id": "req-1",
                "restaurant_id": "resto-1",
                "mode": "suggest-new",
                "status": "submitted",
                "submitted_at": "2024-05-01T12:00:00Z",
            },
        )

    ack = await _client(handler).submit_optimization("suggest-new", OptimizationCriteria(max_suggestions=3))

    assert ack.request_id == "req-1"
    assert bodies[0]["mode"] == "suggest-new"
    assert bodies[0]["criteria"]["max_suggestions"] == 3


@pytest.mark.asyncio
async def test_error_response_raises_with_detail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"detail": "Ce candidat a déjà été traité."})

    with pytest.raises(ApiClientError) as excinfo:
        await _client(handler).decide_candidate("suggest-new", "c-2", True)

    assert excinfo.value.status_code == 409
    assert str(excinfo.value) == "Ce candidat a déjà été traité."


@pytest.mark.asyncio
async def test_network_failure_raises_api_client_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(ApiClientError) as excinfo:
        await _client(handler).list_menu_items()

    assert excinfo.value.status_code is None
