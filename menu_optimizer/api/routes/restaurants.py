"""Restaurant profile setup endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from menu_optimizer.api.dependencies import (
    get_current_restaurant_id,
    get_current_user_id,
    get_restaurant_service,
    get_restaurant_setup_service,
)
from menu_optimizer.schemas import Restaurant, RestaurantProfilePayload, RestaurantSelection
from menu_optimizer.services.postgrest_client import raise_store_error
from menu_optimizer.services.record_store import RecordStoreError
from menu_optimizer.services.restaurant_service import RestaurantProfileExistsError, RestaurantService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/restaurants", tags=["Restaurants"])


@router.post("", response_model=Restaurant, status_code=201)
async def setup_restaurant_profile(
    payload: RestaurantProfilePayload,
    owner_id: str = Depends(get_current_user_id),
    service: RestaurantService = Depends(get_restaurant_setup_service),
) -> Restaurant:
    try:
        return await service.setup_profile(owner_id, payload)
    except RestaurantProfileExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise_store_error(exc, context="setup restaurant profile")


@router.get("/current", response_model=Restaurant)
async def get_current_restaurant(
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: RestaurantService = Depends(get_restaurant_service),
) -> Restaurant:
    try:
        return await service.get(restaurant_id)
    except RecordStoreError as exc:
        raise_store_error(exc, context="get restaurant")


@router.put("/current/reference-entity", response_model=Restaurant)
async def select_reference_entity(
    selection: RestaurantSelection,
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: RestaurantService = Depends(get_restaurant_service),
) -> Restaurant:
    """Link the restaurant to the market-data entity chosen by the owner."""

    try:
        return await service.select_reference_entity(restaurant_id, selection)
    except RecordStoreError as exc:
        raise_store_error(exc, context="select reference entity")


@router.post("/current/complete-setup", response_model=Restaurant)
async def complete_setup(
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: RestaurantService = Depends(get_restaurant_service),
) -> Restaurant:
    try:
        return await service.complete_setup(restaurant_id)
    except RecordStoreError as exc:
        raise_store_error(exc, context="complete restaurant setup")


__all__ = ["router"]
