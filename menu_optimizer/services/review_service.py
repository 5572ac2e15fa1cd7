"""Committing review decisions on optimization candidates."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from menu_optimizer.repositories.base import RepositoryError
from menu_optimizer.repositories.candidates import (
    CandidateRepository,
    CandidateStateError,
    RevisionCandidateRepository,
    SuggestionCandidateRepository,
)
from menu_optimizer.repositories.menu_items import MenuItemRepository
from menu_optimizer.schemas import (
    REVISE_EXISTING,
    SUGGEST_NEW,
    BatchDecisionResult,
    CandidateReview,
    MenuItem,
    OptimizationMode,
    RevisionCandidate,
    SuggestionCandidate,
)
from menu_optimizer.services.record_store import RecordNotFoundError, RecordStoreError

logger = logging.getLogger(__name__)


class ReviewService:
    """Server side of the review flow.

    Approving a candidate first writes its content into the menu, then marks
    the candidate. Both writes are idempotent (a suggestion becomes the menu
    item whose id is the candidate id), so a decision that failed half way can
    simply be sent again.
    """

    def __init__(
        self,
        *,
        menu_items: MenuItemRepository,
        revisions: RevisionCandidateRepository,
        suggestions: SuggestionCandidateRepository,
    ):
        self.menu_items = menu_items
        self._repositories: Dict[str, CandidateRepository[Any]] = {
            REVISE_EXISTING: revisions,
            SUGGEST_NEW: suggestions,
        }

    def repository_for(self, mode: OptimizationMode) -> CandidateRepository[Any]:
        try:
            return self._repositories[mode]
        except KeyError:
            raise ValueError(f"Mode d'optimisation inconnu : {mode}") from None

    async def list_pending(self, restaurant_id: str, mode: OptimizationMode) -> List[Any]:
        return await self.repository_for(mode).get_by_status(restaurant_id, "pending")

    async def list_by_status(self, restaurant_id: str, mode: OptimizationMode) -> CandidateReview:
        candidates = await self.repository_for(mode).get_by_restaurant(restaurant_id)
        review = CandidateReview(restaurant_id=restaurant_id, mode=mode)
        for candidate in sorted(candidates, key=lambda entry: entry.created_at.isoformat() if entry.created_at else ""):
            getattr(review, candidate.status).append(candidate)
        return review

    async def decide_candidate(
        self,
        restaurant_id: str,
        mode: OptimizationMode,
        candidate_id: str,
        approved: bool,
    ) -> Any:
        repository = self.repository_for(mode)
        candidate = await repository.get_by_id(candidate_id)
        if candidate is None or candidate.restaurant_id != restaurant_id:
            raise RecordNotFoundError(f"Candidat {candidate_id} introuvable.", status_code=404)

        target = "approved" if approved else "rejected"
        if candidate.status == target:
            return candidate
        if candidate.status != "pending":
            raise CandidateStateError(candidate_id, candidate.status, target)

        if approved:
            if isinstance(candidate, RevisionCandidate):
                await self._apply_revision(candidate)
            elif isinstance(candidate, SuggestionCandidate):
                await self._apply_suggestion(candidate)

        updated = await repository.update_status(candidate_id, target)
        logger.info(
            "Candidate decided",
            extra={"restaurant_id": restaurant_id, "mode": mode, "candidate_id": candidate_id, "status": target},
        )
        return updated

    async def decide_many(
        self,
        restaurant_id: str,
        mode: OptimizationMode,
        decisions: Mapping[str, bool],
    ) -> BatchDecisionResult:
        """Commit each decision in turn; failures are counted, not raised."""

        result = BatchDecisionResult()
        for candidate_id, approved in decisions.items():
            try:
                await self.decide_candidate(restaurant_id, mode, candidate_id, approved)
            except (RecordStoreError, RepositoryError) as exc:
                logger.warning(
                    "Candidate decision failed",
                    extra={"candidate_id": candidate_id, "mode": mode, "error": str(exc)},
                )
                result.failed += 1
                result.errors[candidate_id] = str(exc)
                continue
            except Exception as exc:
                logger.exception(
                    "Unexpected error while deciding candidate",
                    extra={"candidate_id": candidate_id, "mode": mode},
                )
                result.failed += 1
                result.errors[candidate_id] = str(exc) or type(exc).__name__
                continue
            result.succeeded += 1
            result.committed_ids.append(candidate_id)
        return result

    async def _apply_revision(self, candidate: RevisionCandidate) -> Optional[MenuItem]:
        item = await self.menu_items.get_by_id(candidate.item_id)
        if item is None or item.restaurant_id != candidate.restaurant_id:
            logger.warning(
                "Approved revision targets a missing menu item",
                extra={"candidate_id": candidate.candidate_id, "item_id": candidate.item_id},
            )
            return None

        updated = await self.menu_items.update(
            candidate.item_id,
            {"name": candidate.proposed_name, "description": candidate.proposed_description},
        )
        if updated.enhancement_status == "pending":
            updated = await self.menu_items.update_enhanced_description_status(candidate.item_id, "approved")
        return updated

    async def _apply_suggestion(self, candidate: SuggestionCandidate) -> MenuItem:
        return await self.menu_items.create(
            MenuItem(
                item_id=candidate.candidate_id,
                restaurant_id=candidate.restaurant_id,
                name=candidate.name,
                description=candidate.description,
                price=candidate.estimated_price,
                category=candidate.category,
                ingredients=list(candidate.ingredients),
                dietary_tags=list(candidate.dietary_tags),
                is_active=True,
                is_ai_generated=True,
            )
        )

    def for_restaurant(self, restaurant_id: str) -> "RestaurantReviewBackend":
        return RestaurantReviewBackend(self, restaurant_id)


class RestaurantReviewBackend:
    """Binds a ``ReviewService`` to one restaurant for the review controller."""

    def __init__(self, service: ReviewService, restaurant_id: str):
        self.service = service
        self.restaurant_id = restaurant_id

    async def list_pending_candidates(self, mode: OptimizationMode) -> List[Any]:
        return await self.service.list_pending(self.restaurant_id, mode)

    async def decide_candidate(self, mode: OptimizationMode, candidate_id: str, approved: bool) -> Any:
        return await self.service.decide_candidate(self.restaurant_id, mode, candidate_id, approved)


__all__ = ["ReviewService", "RestaurantReviewBackend"]
