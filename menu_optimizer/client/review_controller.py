"""Client-side review of pending candidates for one restaurant and mode."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Protocol

from menu_optimizer.client.api_client import ApiClientError
from menu_optimizer.repositories.base import RepositoryError
from menu_optimizer.schemas import BatchDecisionResult, OptimizationMode
from menu_optimizer.services.record_store import RecordStoreError

logger = logging.getLogger(__name__)

DECISION_ERRORS = (ApiClientError, RecordStoreError, RepositoryError)


class ReviewBackend(Protocol):
    async def list_pending_candidates(self, mode: OptimizationMode) -> List[Any]:
        ...

    async def decide_candidate(self, mode: OptimizationMode, candidate_id: str, approved: bool) -> Any:
        ...


class ReviewController:
    """Holds the pending list and the owner's intents until they are committed.

    ``backend`` is either the HTTP client or a ``RestaurantReviewBackend``.
    A candidate leaves the local list only once its decision went through.
    """

    def __init__(self, backend: ReviewBackend, mode: OptimizationMode):
        self.backend = backend
        self.mode = mode
        self._pending: Dict[str, Any] = {}
        self._intents: Dict[str, bool] = {}

    async def load(self) -> List[Any]:
        candidates = await self.backend.list_pending_candidates(self.mode)
        self._pending = {candidate.candidate_id: candidate for candidate in candidates}
        self._intents = {cid: approved for cid, approved in self._intents.items() if cid in self._pending}
        return self.pending

    @property
    def pending(self) -> List[Any]:
        return list(self._pending.values())

    @property
    def intents(self) -> Dict[str, bool]:
        return dict(self._intents)

    def set_intent(self, candidate_id: str, approved: bool) -> None:
        if candidate_id not in self._pending:
            raise KeyError(candidate_id)
        self._intents[candidate_id] = approved

    def clear_intent(self, candidate_id: str) -> None:
        self._intents.pop(candidate_id, None)

    async def decide(self, candidate_id: str, approved: bool) -> Any:
        """Commit one decision right away; errors propagate and the candidate stays."""

        candidate = await self.backend.decide_candidate(self.mode, candidate_id, approved)
        self._pending.pop(candidate_id, None)
        self._intents.pop(candidate_id, None)
        return candidate

    async def apply_all(self) -> BatchDecisionResult:
        """Commit every recorded intent in order, one call each."""

        result = BatchDecisionResult()
        for candidate_id, approved in list(self._intents.items()):
            try:
                await self.decide(candidate_id, approved)
            except DECISION_ERRORS as exc:
                logger.warning(
                    "Candidate decision failed",
                    extra={"candidate_id": candidate_id, "mode": self.mode, "error": str(exc)},
                )
                result.failed += 1
                result.errors[candidate_id] = str(exc)
                continue
            except Exception as exc:
                logger.exception(
                    "Unexpected error while deciding candidate",
                    extra={"candidate_id": candidate_id, "mode": self.mode},
                )
                result.failed += 1
                result.errors[candidate_id] = str(exc) or type(exc).__name__
                continue
            result.succeeded += 1
            result.committed_ids.append(candidate_id)
        return result


__all__ = ["ReviewBackend", "ReviewController"]
