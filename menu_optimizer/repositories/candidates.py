"""Repositories for the two optimization candidate shapes.

Both share one lifecycle: a candidate is created ``pending`` and moves once to
``approved`` or ``rejected``. ``update_status`` is the only way to change it.
"""

from __future__ import annotations

import logging
from typing import List, Optional, TypeVar, get_args

from menu_optimizer.config.settings import REVISION_CANDIDATES_TABLE, SUGGESTION_CANDIDATES_TABLE
from menu_optimizer.repositories.base import GenericRepository, Patch, RepositoryError, StatusTransitionError
from menu_optimizer.schemas import (
    REVISE_EXISTING,
    SUGGEST_NEW,
    CandidateStatus,
    OptimizationMode,
    RevisionCandidate,
    SuggestionCandidate,
)
from menu_optimizer.services.record_store import RecordNotFoundError

logger = logging.getLogger(__name__)

CandidateT = TypeVar("CandidateT", RevisionCandidate, SuggestionCandidate)


class CandidateStateError(StatusTransitionError):
    """Raised when a decided candidate is asked to change its decision."""


class ImmutableCandidateError(RepositoryError):
    """Raised when a patch targets anything but a candidate's status."""

    def __init__(self, candidate_id: str, attributes: List[str]):
        super().__init__(f"{candidate_id}: attributs non modifiables {', '.join(attributes)}.")
        self.candidate_id = candidate_id
        self.attributes = attributes


class CandidateRepository(GenericRepository[CandidateT]):
    primary_key = "candidate_id"
    indexed_attributes = ("restaurant_id",)
    mode: OptimizationMode

    async def update_status(self, candidate_id: str, status: CandidateStatus) -> CandidateT:
        """Move a candidate to ``status``.

        Asking for the status the candidate already has returns it without a
        write. A candidate that is no longer pending cannot change.
        """

        current = await self.get_by_id(candidate_id)
        if current is None:
            raise RecordNotFoundError(f"{self.entity_name} {candidate_id} introuvable.", status_code=404)
        if status not in get_args(CandidateStatus):
            raise StatusTransitionError(candidate_id, current.status, str(status))
        if current.status == status:
            logger.debug(
                "Candidate already in requested status",
                extra={"candidate_id": candidate_id, "status": status},
            )
            return current
        if current.status != "pending":
            raise CandidateStateError(candidate_id, current.status, status)

        updated = await super().update(candidate_id, {"status": status})
        logger.info(
            "Candidate status updated",
            extra={"candidate_id": candidate_id, "mode": self.mode, "status": status},
        )
        return updated

    async def update(self, candidate_id: str, patch: Optional[Patch]) -> CandidateT:
        """Only ``status`` may change, and only through ``update_status``."""

        attributes = self._patch_attributes(patch)
        frozen = sorted(name for name in attributes if name != "status")
        if frozen:
            raise ImmutableCandidateError(candidate_id, frozen)
        if "status" in attributes:
            return await self.update_status(candidate_id, attributes["status"])
        return await super().update(candidate_id, None)

    async def get_by_status(self, restaurant_id: str, status: CandidateStatus) -> List[CandidateT]:
        candidates = await self.list({"restaurant_id": restaurant_id, "status": status})
        return sorted(candidates, key=lambda candidate: candidate.created_at.isoformat() if candidate.created_at else "")

    async def get_by_restaurant(self, restaurant_id: str) -> List[CandidateT]:
        return await self.list({"restaurant_id": restaurant_id})


class RevisionCandidateRepository(CandidateRepository[RevisionCandidate]):
    model = RevisionCandidate
    table = REVISION_CANDIDATES_TABLE
    mode = REVISE_EXISTING


class SuggestionCandidateRepository(CandidateRepository[SuggestionCandidate]):
    model = SuggestionCandidate
    table = SUGGESTION_CANDIDATES_TABLE
    mode = SUGGEST_NEW


__all__ = [
    "CandidateRepository",
    "CandidateStateError",
    "ImmutableCandidateError",
    "RevisionCandidateRepository",
    "SuggestionCandidateRepository",
]
