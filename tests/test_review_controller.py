import pytest

from conftest import InMemoryRecordStore, Repositories
from menu_optimizer.client.api_client import ApiClientError
from menu_optimizer.client.review_controller import ReviewController
from menu_optimizer.config.settings import MENU_ITEMS_TABLE
from menu_optimizer.schemas import SuggestionCandidate
from menu_optimizer.services.review_service import ReviewService


class FlakyBackend:
    """Wraps a real backend and fails decisions for the given candidates."""

    def __init__(self, backend, failing, error=None):
        self.backend = backend
        self.failing = set(failing)
        self.error = error or ApiClientError("Supabase est temporairement inaccessible.", status_code=503)
        self.decided = []

    async def list_pending_candidates(self, mode):
        return await self.backend.list_pending_candidates(mode)

    async def decide_candidate(self, mode, candidate_id, approved):
        if candidate_id in self.failing:
            raise self.error
        self.decided.append((candidate_id, approved))
        return await self.backend.decide_candidate(mode, candidate_id, approved)


async def _seed(repos: Repositories, *names: str):
    return [
        await repos.suggestions.create(
            SuggestionCandidate(restaurant_id="resto-1", name=name, estimated_price=12.0, category="Plats")
        )
        for name in names
    ]


def _backend(repos: Repositories):
    service = ReviewService(menu_items=repos.menu_items, revisions=repos.revisions, suggestions=repos.suggestions)
    return service.for_restaurant("resto-1")


@pytest.mark.asyncio
async def test_load_lists_pending_candidates(repos: Repositories) -> None:
    first, second = await _seed(repos, "Bowl", "Tacos")
    controller = ReviewController(_backend(repos), "suggest-new")

    pending = await controller.load()

    assert {candidate.candidate_id for candidate in pending} == {first.candidate_id, second.candidate_id}


@pytest.mark.asyncio
async def test_decide_commits_and_prunes_candidate(repos: Repositories) -> None:
    first, second = await _seed(repos, "Bowl", "Tacos")
    controller = ReviewController(_backend(repos), "suggest-new")
    await controller.load()

    decided = await controller.decide(first.candidate_id, True)

    assert decided.status == "approved"
    assert [candidate.candidate_id for candidate in controller.pending] == [second.candidate_id]
    assert await repos.menu_items.get_by_id(first.candidate_id) is not None


@pytest.mark.asyncio
async def test_apply_all_commits_intents_in_order(repos: Repositories, store: InMemoryRecordStore) -> None:
    first, second = await _seed(repos, "Bowl", "Tacos")
    controller = ReviewController(_backend(repos), "suggest-new")
    await controller.load()
    controller.set_intent(first.candidate_id, True)
    controller.set_intent(second.candidate_id, False)

    result = await controller.apply_all()

    assert result.succeeded == 2
    assert result.failed == 0
    assert controller.pending == []
    assert controller.intents == {}
    assert len(store.rows(MENU_ITEMS_TABLE)) == 1
    assert (await repos.suggestions.get_by_id(second.candidate_id)).status == "rejected"


@pytest.mark.asyncio
async def test_apply_all_keeps_failed_candidates(repos: Repositories) -> None:
    first, second, third = await _seed(repos, "Bowl", "Tacos", "Ramen")
    backend = FlakyBackend(_backend(repos), failing=[second.candidate_id])
    controller = ReviewController(backend, "suggest-new")
    await controller.load()
    for candidate in (first, second, third):
        controller.set_intent(candidate.candidate_id, True)

    result = await controller.apply_all()

    assert result.succeeded == 2
    assert result.failed == 1
    assert result.committed_ids == [first.candidate_id, third.candidate_id]
    assert list(result.errors) == [second.candidate_id]
    assert [candidate.candidate_id for candidate in controller.pending] == [second.candidate_id]
    assert controller.intents == {second.candidate_id: True}
    assert [candidate_id for candidate_id, _ in backend.decided] == [first.candidate_id, third.candidate_id]


@pytest.mark.asyncio
async def test_apply_all_counts_unexpected_errors(repos: Repositories) -> None:
    first, second = await _seed(repos, "Bowl", "Tacos")
    backend = FlakyBackend(_backend(repos), failing=[first.candidate_id], error=ValueError("réponse illisible"))
    controller = ReviewController(backend, "suggest-new")
    await controller.load()
    controller.set_intent(first.candidate_id, True)
    controller.set_intent(second.candidate_id, True)

    result = await controller.apply_all()

    assert result.succeeded == 1
    assert result.failed == 1
    assert result.errors == {first.candidate_id: "réponse illisible"}
    assert controller.intents == {first.candidate_id: True}


@pytest.mark.asyncio
async def test_intents_only_for_loaded_candidates(repos: Repositories) -> None:
    (first,) = await _seed(repos, "Bowl")
    controller = ReviewController(_backend(repos), "suggest-new")
    await controller.load()

    with pytest.raises(KeyError):
        controller.set_intent("unknown", True)

    controller.set_intent(first.candidate_id, True)
    controller.clear_intent(first.candidate_id)
    assert controller.intents == {}
