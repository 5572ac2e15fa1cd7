"""Async HTTP client for the optimizer API, used by scripts and the review tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx
from pydantic import TypeAdapter

from menu_optimizer.schemas import (
    BatchDecisionResult,
    CandidateReview,
    MenuItem,
    OptimizationAck,
    OptimizationCandidate,
    OptimizationCriteria,
    OptimizationMode,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

_CANDIDATE_LIST = TypeAdapter(List[OptimizationCandidate])
_CANDIDATE = TypeAdapter(OptimizationCandidate)
_MENU_ITEM_LIST = TypeAdapter(List[MenuItem])


class ApiClientError(RuntimeError):
    """Raised when the API answers with an error or cannot be reached."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OptimizerApiClient:
    """Calls the optimizer API on behalf of one signed-in owner and restaurant."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        restaurant_id: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.restaurant_id = restaurant_id
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }
        if self.restaurant_id:
            headers["X-Restaurant-Id"] = self.restaurant_id
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(
                    method,
                    path,
                    json=json,
                    params=params,
                    headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            logger.error("Optimizer API unreachable: %s", exc)
            raise ApiClientError("Impossible de contacter le service d'optimisation.") from exc

        if response.status_code == 204:
            return None

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            detail = data.get("detail") if isinstance(data, dict) else None
            logger.warning(
                "Optimizer API call failed",
                extra={"method": method, "path": path, "status_code": response.status_code},
            )
            raise ApiClientError(
                str(detail or "La requête a échoué."),
                status_code=response.status_code,
            )
        return data

    async def submit_optimization(
        self,
        mode: OptimizationMode,
        criteria: Optional[OptimizationCriteria] = None,
    ) -> OptimizationAck:
        payload: Dict[str, Any] = {"mode": mode}
        if criteria is not None:
            payload["criteria"] = criteria.model_dump(mode="json")
        data = await self._request("POST", "/api/optimizations", json=payload)
        return OptimizationAck.model_validate(data)

    async def list_pending_candidates(self, mode: OptimizationMode) -> List[Any]:
        data = await self._request("GET", f"/api/optimizations/{mode}/pending")
        return _CANDIDATE_LIST.validate_python(data or [])

    async def list_candidates(self, mode: OptimizationMode) -> CandidateReview:
        data = await self._request("GET", f"/api/optimizations/{mode}")
        return CandidateReview.model_validate(data)

    async def decide_candidate(self, mode: OptimizationMode, candidate_id: str, approved: bool) -> Any:
        data = await self._request(
            "POST",
            f"/api/optimizations/{mode}/{candidate_id}/decision",
            json={"approved": approved},
        )
        return _CANDIDATE.validate_python(data)

    async def decide_candidates(self, mode: OptimizationMode, decisions: Mapping[str, bool]) -> BatchDecisionResult:
        data = await self._request(
            "POST",
            f"/api/optimizations/{mode}/decisions",
            json={"decisions": dict(decisions)},
        )
        return BatchDecisionResult.model_validate(data)

    async def list_menu_items(self, *, category: Optional[str] = None, active_only: bool = False) -> List[MenuItem]:
        params: Dict[str, Any] = {"active_only": str(active_only).lower()}
        if category:
            params["category"] = category
        data = await self._request("GET", "/api/menu-items", params=params)
        return _MENU_ITEM_LIST.validate_python(data or [])


__all__ = ["ApiClientError", "OptimizerApiClient"]
