"""Menu analytics endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from menu_optimizer.api.dependencies import get_analytics_repository, get_current_restaurant_id
from menu_optimizer.repositories.analytics import AnalyticsRepository
from menu_optimizer.schemas import MenuAnalytics, TrendData, TrendPayload
from menu_optimizer.services.postgrest_client import raise_store_error
from menu_optimizer.services.record_store import RecordStoreError

router = APIRouter(prefix="/api/analytics", tags=["Analytics"])


@router.get("", response_model=List[MenuAnalytics])
async def list_analytics(
    item_id: Optional[str] = Query(default=None),
    restaurant_id: str = Depends(get_current_restaurant_id),
    repository: AnalyticsRepository = Depends(get_analytics_repository),
) -> List[MenuAnalytics]:
    filters = {"restaurant_id": restaurant_id}
    if item_id:
        filters["item_id"] = item_id
    try:
        return await repository.list(filters)
    except RecordStoreError as exc:
        raise_store_error(exc, context="list analytics")


@router.post("/{analytics_id}/trends", response_model=MenuAnalytics)
async def add_trend(
    analytics_id: str,
    payload: TrendPayload,
    restaurant_id: str = Depends(get_current_restaurant_id),
    repository: AnalyticsRepository = Depends(get_analytics_repository),
) -> MenuAnalytics:
    try:
        record = await repository.get_by_id(analytics_id)
        if record is None or record.restaurant_id != restaurant_id:
            raise HTTPException(status_code=404, detail="Analyse introuvable.")
        return await repository.add_trend_data(analytics_id, TrendData(**payload.model_dump()))
    except RecordStoreError as exc:
        raise_store_error(exc, context="add trend data")


__all__ = ["router"]
