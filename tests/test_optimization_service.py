from typing import List

import pytest

from conftest import FakeContentProvider, InMemoryRecordStore, Repositories
from menu_optimizer.config.settings import REVISION_CANDIDATES_TABLE, SUGGESTION_CANDIDATES_TABLE
from menu_optimizer.schemas import (
    CompetitorDish,
    CompetitorDishSnapshot,
    MenuItem,
    OptimizationCriteria,
    Restaurant,
)
from menu_optimizer.services.content_provider import SuggestionProposal
from menu_optimizer.services.optimization_service import (
    OptimizationService,
    OptimizationValidationError,
    select_items_to_revise,
)


class JobCollector:
    def __init__(self) -> None:
        self.jobs: List = []

    def __call__(self, job) -> None:
        self.jobs.append(job)

    async def run_all(self) -> List[int]:
        return [await job() for job in self.jobs]


def _service(repos: Repositories, provider: FakeContentProvider) -> OptimizationService:
    return OptimizationService(
        menu_items=repos.menu_items,
        revisions=repos.revisions,
        suggestions=repos.suggestions,
        demographics=repos.demographics,
        competitor_dishes=repos.competitor_dishes,
        restaurants=repos.restaurants,
        provider=provider,
    )


async def _seed_items(repos: Repositories) -> List[MenuItem]:
    return [
        await repos.menu_items.create(
            MenuItem(restaurant_id="resto-1", name="Burger", description="Boeuf", category="Plats")
        ),
        await repos.menu_items.create(
            MenuItem(restaurant_id="resto-1", name="Tiramisu", description="Mascarpone", category="Desserts")
        ),
        await repos.menu_items.create(
            MenuItem(restaurant_id="resto-1", name="Ancien", description="Retiré", category="Plats", is_active=False)
        ),
    ]


def test_select_items_to_revise_applies_ids_and_excluded_categories() -> None:
    items = [
        MenuItem(item_id="a", restaurant_id="r", name="Burger", category="Plats"),
        MenuItem(item_id="b", restaurant_id="r", name="Tiramisu", category="Desserts"),
        MenuItem(item_id="c", restaurant_id="r", name="Frites", category="Plats"),
    ]

    by_id = select_items_to_revise(items, OptimizationCriteria(item_ids=["a", "b"]))
    excluded = select_items_to_revise(items, OptimizationCriteria(exclude_categories=["desserts"]))

    assert [item.item_id for item in by_id] == ["a", "b"]
    assert [item.item_id for item in excluded] == ["a", "c"]


@pytest.mark.asyncio
async def test_revision_request_without_active_items_is_rejected(repos: Repositories, store: InMemoryRecordStore) -> None:
    provider = FakeContentProvider()
    collector = JobCollector()
    await repos.menu_items.create(MenuItem(restaurant_id="resto-1", name="Ancien", is_active=False))

    with pytest.raises(OptimizationValidationError):
        await _service(repos, provider).submit_optimization(
            "resto-1", "revise-existing", OptimizationCriteria(), collector
        )

    assert collector.jobs == []
    assert provider.calls == []
    assert store.rows(REVISION_CANDIDATES_TABLE) == []


@pytest.mark.asyncio
async def test_revision_job_writes_pending_candidates_for_active_items(repos: Repositories) -> None:
    await _seed_items(repos)
    collector = JobCollector()
    service = _service(repos, FakeContentProvider())

    ack = await service.submit_optimization("resto-1", "revise-existing", OptimizationCriteria(), collector)

    assert ack.status == "submitted"
    assert ack.mode == "revise-existing"
    assert ack.restaurant_id == "resto-1"
    assert await repos.revisions.get_by_status("resto-1", "pending") == []

    assert await collector.run_all() == [2]
    pending = await repos.revisions.get_by_status("resto-1", "pending")
    assert sorted(candidate.original_name for candidate in pending) == ["Burger", "Tiramisu"]
    burger = next(candidate for candidate in pending if candidate.original_name == "Burger")
    assert burger.proposed_name == "Burger revisité"
    assert burger.original_description == "Boeuf"
    assert burger.demographic_insights == ["25-34 (40%)"]


@pytest.mark.asyncio
async def test_revision_job_respects_selected_item_ids(repos: Repositories) -> None:
    burger, _, _ = await _seed_items(repos)
    collector = JobCollector()

    await _service(repos, FakeContentProvider()).submit_optimization(
        "resto-1", "revise-existing", OptimizationCriteria(item_ids=[burger.item_id]), collector
    )
    await collector.run_all()

    pending = await repos.revisions.get_by_status("resto-1", "pending")
    assert [candidate.item_id for candidate in pending] == [burger.item_id]


@pytest.mark.asyncio
async def test_provider_failure_writes_nothing(repos: Repositories, store: InMemoryRecordStore) -> None:
    await _seed_items(repos)
    collector = JobCollector()

    await _service(repos, FakeContentProvider(fail=True)).submit_optimization(
        "resto-1", "revise-existing", OptimizationCriteria(), collector
    )

    assert await collector.run_all() == [0]
    assert store.rows(REVISION_CANDIDATES_TABLE) == []


@pytest.mark.asyncio
async def test_suggestion_request_needs_competitor_dishes(repos: Repositories) -> None:
    collector = JobCollector()
    service = _service(repos, FakeContentProvider())

    with pytest.raises(OptimizationValidationError):
        await service.submit_optimization("resto-1", "suggest-new", OptimizationCriteria(), collector)

    await repos.competitor_dishes.create_or_update(CompetitorDishSnapshot(restaurant_id="resto-1"))
    with pytest.raises(OptimizationValidationError):
        await service.submit_optimization("resto-1", "suggest-new", OptimizationCriteria(), collector)

    assert collector.jobs == []


@pytest.mark.asyncio
async def test_suggestion_job_writes_at_most_max_suggestions(repos: Repositories, store: InMemoryRecordStore) -> None:
    await repos.restaurants.create(Restaurant(restaurant_id="resto-1", owner_id="user-1", name="Chez Nous"))
    await repos.competitor_dishes.create_or_update(
        CompetitorDishSnapshot(
            restaurant_id="resto-1",
            dishes=[CompetitorDish(dish_name="Ramen", restaurant_count=4, popularity=4)],
        )
    )
    proposals = [
        SuggestionProposal(
            name=f"Suggestion {index}",
            description="Nouveau plat",
            estimated_price=15.0,
            category="Plats",
            ingredients=("nouilles",),
            based_on_dish="Ramen",
        )
        for index in range(4)
    ]
    collector = JobCollector()

    await _service(repos, FakeContentProvider(suggestions=proposals)).submit_optimization(
        "resto-1", "suggest-new", OptimizationCriteria(max_suggestions=3), collector
    )

    assert await collector.run_all() == [3]
    pending = await repos.suggestions.get_by_status("resto-1", "pending")
    assert len(pending) == 3
    assert all(candidate.competitor_dish == "Ramen" for candidate in pending)
    assert all(candidate.inspiration_source.endswith("Ramen") for candidate in pending)
    assert store.count("batch_write", SUGGESTION_CANDIDATES_TABLE) == 1
