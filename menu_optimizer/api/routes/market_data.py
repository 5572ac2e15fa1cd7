"""Cached demographic and competitor data for the current restaurant."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from menu_optimizer.api.dependencies import (
    get_competitor_dish_snapshot_repository,
    get_current_restaurant_id,
    get_demographic_snapshot_repository,
    get_market_data_provider,
    get_restaurant_repository,
)
from menu_optimizer.repositories.restaurants import RestaurantRepository
from menu_optimizer.repositories.snapshots import (
    CompetitorDishSnapshotRepository,
    DemographicSnapshotRepository,
)
from menu_optimizer.schemas import MarketDataResponse
from menu_optimizer.services.market_data_service import (
    DEFAULT_MIN_RATING,
    MarketDataError,
    MarketDataProvider,
    UnlinkedRestaurantError,
    refresh_market_data,
)
from menu_optimizer.services.postgrest_client import raise_store_error
from menu_optimizer.services.record_store import RecordStoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/market-data", tags=["Market data"])


@router.get("", response_model=MarketDataResponse)
async def get_market_data(
    restaurant_id: str = Depends(get_current_restaurant_id),
    demographics: DemographicSnapshotRepository = Depends(get_demographic_snapshot_repository),
    competitor_dishes: CompetitorDishSnapshotRepository = Depends(get_competitor_dish_snapshot_repository),
) -> MarketDataResponse:
    try:
        return MarketDataResponse(
            demographics=await demographics.get_by_id(restaurant_id),
            competitor_dishes=await competitor_dishes.get_by_id(restaurant_id),
        )
    except RecordStoreError as exc:
        raise_store_error(exc, context="get market data")


@router.post("/refresh", response_model=MarketDataResponse)
async def refresh(
    min_rating: float = Query(default=DEFAULT_MIN_RATING, ge=0, le=5),
    restaurant_id: str = Depends(get_current_restaurant_id),
    restaurants: RestaurantRepository = Depends(get_restaurant_repository),
    demographics: DemographicSnapshotRepository = Depends(get_demographic_snapshot_repository),
    competitor_dishes: CompetitorDishSnapshotRepository = Depends(get_competitor_dish_snapshot_repository),
    provider: MarketDataProvider = Depends(get_market_data_provider),
) -> MarketDataResponse:
    """Replace both snapshots with freshly fetched data."""

    try:
        restaurant = await restaurants.get_by_id(restaurant_id)
        if restaurant is None:
            raise HTTPException(status_code=404, detail="Restaurant introuvable.")
        demographic_snapshot, competitor_snapshot = await refresh_market_data(
            restaurant,
            provider=provider,
            demographics=demographics,
            competitor_dishes=competitor_dishes,
            min_rating=min_rating,
        )
    except UnlinkedRestaurantError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except MarketDataError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise_store_error(exc, context="refresh market data")
    return MarketDataResponse(demographics=demographic_snapshot, competitor_dishes=competitor_snapshot)


__all__ = ["router"]
