"""Optimization requests: synchronous validation, background candidate generation.

A request is acknowledged as soon as its prerequisites are checked. The
generation job then runs after the response is sent and writes one pending
candidate per proposal. When the provider fails nothing is written and the
client simply never sees candidates appear.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any, Awaitable, Callable, List, Sequence
from uuid import uuid4

from menu_optimizer.repositories.candidates import CandidateRepository
from menu_optimizer.repositories.menu_items import MenuItemRepository
from menu_optimizer.repositories.restaurants import RestaurantRepository
from menu_optimizer.repositories.snapshots import (
    CompetitorDishSnapshotRepository,
    DemographicSnapshotRepository,
)
from menu_optimizer.schemas import (
    REVISE_EXISTING,
    SUGGEST_NEW,
    CompetitorDishSnapshot,
    MenuItem,
    OptimizationAck,
    OptimizationCriteria,
    OptimizationMode,
    RevisionCandidate,
    SuggestionCandidate,
)
from menu_optimizer.services.content_provider import ContentGenerationError, ContentProvider
from menu_optimizer.services.record_store import BatchWriteError, RecordStoreError

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[int]]
Scheduler = Callable[[Job], Any]


class OptimizationValidationError(RuntimeError):
    """Raised when a restaurant lacks the data an optimization mode needs."""


def select_items_to_revise(items: Sequence[MenuItem], criteria: OptimizationCriteria) -> List[MenuItem]:
    selected = list(items)
    if criteria.item_ids:
        wanted = set(criteria.item_ids)
        selected = [item for item in selected if item.item_id in wanted]
    if criteria.exclude_categories:
        excluded = {category.lower() for category in criteria.exclude_categories}
        selected = [item for item in selected if item.category.lower() not in excluded]
    return selected


class OptimizationService:
    def __init__(
        self,
        *,
        menu_items: MenuItemRepository,
        revisions: CandidateRepository[RevisionCandidate],
        suggestions: CandidateRepository[SuggestionCandidate],
        demographics: DemographicSnapshotRepository,
        competitor_dishes: CompetitorDishSnapshotRepository,
        restaurants: RestaurantRepository,
        provider: ContentProvider,
    ):
        self.menu_items = menu_items
        self.revisions = revisions
        self.suggestions = suggestions
        self.demographics = demographics
        self.competitor_dishes = competitor_dishes
        self.restaurants = restaurants
        self.provider = provider

    async def submit_optimization(
        self,
        restaurant_id: str,
        mode: OptimizationMode,
        criteria: OptimizationCriteria,
        schedule: Scheduler,
    ) -> OptimizationAck:
        """Validate the request, hand the job to ``schedule`` and acknowledge it.

        ``schedule`` receives a zero-argument coroutine function; FastAPI's
        ``BackgroundTasks.add_task`` fits directly.
        """

        request_id = str(uuid4())
        if mode == REVISE_EXISTING:
            active_items = await self.menu_items.get_active_by_restaurant(restaurant_id)
            items = select_items_to_revise(active_items, criteria)
            if not items:
                raise OptimizationValidationError("Aucun plat actif à optimiser pour ce restaurant.")
            job: Job = partial(self.run_revision_job, request_id, restaurant_id, items, criteria)
        elif mode == SUGGEST_NEW:
            snapshot = await self.competitor_dishes.get_by_id(restaurant_id)
            if snapshot is None or not snapshot.dishes:
                raise OptimizationValidationError(
                    "Aucune donnée sur les plats des restaurants similaires. Actualisez les données marché."
                )
            job = partial(self.run_suggestion_job, request_id, restaurant_id, snapshot, criteria)
        else:
            raise OptimizationValidationError(f"Mode d'optimisation inconnu : {mode}")

        schedule(job)
        logger.info(
            "Optimization request submitted",
            extra={"request_id": request_id, "restaurant_id": restaurant_id, "mode": mode},
        )
        return OptimizationAck(
            request_id=request_id,
            restaurant_id=restaurant_id,
            mode=mode,
            submitted_at=datetime.now(timezone.utc),
        )

    async def run_revision_job(
        self,
        request_id: str,
        restaurant_id: str,
        items: Sequence[MenuItem],
        criteria: OptimizationCriteria,
    ) -> int:
        logger.info(
            "Revision job started",
            extra={"request_id": request_id, "restaurant_id": restaurant_id, "items": len(items)},
        )
        try:
            demographics = await self.demographics.get_by_id(restaurant_id)
            competitor_dishes = await self.competitor_dishes.get_by_id(restaurant_id)
            proposals = await self.provider.generate_revisions(items, demographics, competitor_dishes, criteria)
        except (ContentGenerationError, RecordStoreError) as exc:
            logger.error(
                "Revision job failed, no candidate written",
                extra={"request_id": request_id, "restaurant_id": restaurant_id, "error": str(exc)},
            )
            return 0

        items_by_id = {item.item_id: item for item in items}
        candidates = []
        for proposal in proposals:
            item = items_by_id.get(proposal.item_id)
            if item is None:
                continue
            candidates.append(
                RevisionCandidate(
                    restaurant_id=restaurant_id,
                    item_id=proposal.item_id,
                    original_name=item.name,
                    proposed_name=proposal.proposed_name,
                    original_description=item.description,
                    proposed_description=proposal.proposed_description,
                    rationale=proposal.rationale,
                    demographic_insights=list(proposal.demographic_insights),
                )
            )
        return await self._write_candidates(request_id, self.revisions, candidates)

    async def run_suggestion_job(
        self,
        request_id: str,
        restaurant_id: str,
        snapshot: CompetitorDishSnapshot,
        criteria: OptimizationCriteria,
    ) -> int:
        logger.info(
            "Suggestion job started",
            extra={"request_id": request_id, "restaurant_id": restaurant_id, "dishes": len(snapshot.dishes)},
        )
        try:
            restaurant = await self.restaurants.get_by_id(restaurant_id)
            existing_items = await self.menu_items.get_by_restaurant(restaurant_id)
            proposals = await self.provider.generate_suggestions(restaurant, snapshot, existing_items, criteria)
        except (ContentGenerationError, RecordStoreError) as exc:
            logger.error(
                "Suggestion job failed, no candidate written",
                extra={"request_id": request_id, "restaurant_id": restaurant_id, "error": str(exc)},
            )
            return 0

        candidates = [
            SuggestionCandidate(
                restaurant_id=restaurant_id,
                name=proposal.name,
                description=proposal.description,
                estimated_price=proposal.estimated_price,
                category=proposal.category,
                ingredients=list(proposal.ingredients),
                dietary_tags=list(proposal.dietary_tags),
                inspiration_source=f"Restaurants similaires - {proposal.based_on_dish or 'spécialités populaires'}",
                competitor_dish=proposal.based_on_dish,
            )
            for proposal in proposals[: criteria.max_suggestions]
        ]
        return await self._write_candidates(request_id, self.suggestions, candidates)

    async def _write_candidates(
        self,
        request_id: str,
        repository: CandidateRepository[Any],
        candidates: Sequence[Any],
    ) -> int:
        if not candidates:
            logger.info("Optimization job produced no candidate", extra={"request_id": request_id})
            return 0
        try:
            await repository.batch_create(candidates)
        except BatchWriteError as exc:
            logger.error(
                "Optimization job partially written",
                extra={"request_id": request_id, "committed": exc.committed, "failed": exc.failed},
            )
            return exc.committed
        logger.info(
            "Optimization job wrote candidates",
            extra={"request_id": request_id, "mode": repository.mode, "count": len(candidates)},
        )
        return len(candidates)


__all__ = ["OptimizationService", "OptimizationValidationError", "select_items_to_revise"]
