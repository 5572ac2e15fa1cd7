"""Optimization requests and candidate review endpoints."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from menu_optimizer.api.dependencies import (
    get_current_restaurant_id,
    get_optimization_service,
    get_review_service,
)
from menu_optimizer.repositories.candidates import CandidateStateError
from menu_optimizer.schemas import (
    BatchDecisionPayload,
    BatchDecisionResult,
    CandidateDecisionPayload,
    CandidateReview,
    OptimizationAck,
    OptimizationCandidate,
    OptimizationMode,
    OptimizationRequest,
)
from menu_optimizer.services.optimization_service import OptimizationService, OptimizationValidationError
from menu_optimizer.services.postgrest_client import raise_store_error
from menu_optimizer.services.record_store import RecordNotFoundError, RecordStoreError
from menu_optimizer.services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/optimizations", tags=["Optimizations"])


@router.post("", response_model=OptimizationAck, status_code=202)
async def submit_optimization(
    payload: OptimizationRequest,
    background_tasks: BackgroundTasks,
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: OptimizationService = Depends(get_optimization_service),
) -> OptimizationAck:
    """Validate the request and start generating candidates in the background."""

    try:
        return await service.submit_optimization(
            restaurant_id,
            payload.mode,
            payload.criteria,
            background_tasks.add_task,
        )
    except OptimizationValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise_store_error(exc, context="submit optimization")


@router.get("/{mode}/pending", response_model=List[OptimizationCandidate])
async def list_pending_candidates(
    mode: OptimizationMode,
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: ReviewService = Depends(get_review_service),
) -> List[OptimizationCandidate]:
    try:
        return await service.list_pending(restaurant_id, mode)
    except RecordStoreError as exc:
        raise_store_error(exc, context="list pending candidates")


@router.get("/{mode}", response_model=CandidateReview)
async def list_candidates(
    mode: OptimizationMode,
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: ReviewService = Depends(get_review_service),
) -> CandidateReview:
    """Pending, approved and rejected candidates of one mode."""

    try:
        return await service.list_by_status(restaurant_id, mode)
    except RecordStoreError as exc:
        raise_store_error(exc, context="list candidates")


@router.post("/{mode}/decisions", response_model=BatchDecisionResult)
async def decide_candidates(
    mode: OptimizationMode,
    payload: BatchDecisionPayload,
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: ReviewService = Depends(get_review_service),
) -> BatchDecisionResult:
    """Commit several decisions in order; the response counts what went through."""

    return await service.decide_many(restaurant_id, mode, payload.decisions)


@router.post("/{mode}/{candidate_id}/decision", response_model=OptimizationCandidate)
async def decide_candidate(
    mode: OptimizationMode,
    candidate_id: str,
    payload: CandidateDecisionPayload,
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: ReviewService = Depends(get_review_service),
) -> OptimizationCandidate:
    try:
        return await service.decide_candidate(restaurant_id, mode, candidate_id, payload.approved)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Candidat introuvable.") from exc
    except CandidateStateError as exc:
        raise HTTPException(status_code=409, detail="Ce candidat a déjà été traité.") from exc
    except RecordStoreError as exc:
        raise_store_error(exc, context="decide candidate")


__all__ = ["router"]
