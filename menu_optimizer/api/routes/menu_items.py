"""Menu item CRUD, description enhancement and taste profile endpoints."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from menu_optimizer.api.dependencies import (
    get_current_restaurant_id,
    get_enhancement_service,
    get_menu_item_repository,
    get_taste_profile_service,
)
from menu_optimizer.repositories.base import UnknownAttributeError
from menu_optimizer.repositories.menu_items import EnhancementStateError, MenuItemRepository
from menu_optimizer.schemas import (
    EnhancementDecisionPayload,
    EnhancementRequest,
    EnhancementResult,
    MenuItem,
    MenuItemCreatePayload,
    MenuItemPatch,
    TasteProfileRequest,
    TasteProfileResult,
)
from menu_optimizer.services.enhancement_service import EnhancementService
from menu_optimizer.services.postgrest_client import raise_store_error
from menu_optimizer.services.record_store import RecordNotFoundError, RecordStoreError
from menu_optimizer.services.taste_profile_service import TasteProfileService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/menu-items", tags=["Menu items"])


async def _get_owned_item(repository: MenuItemRepository, restaurant_id: str, item_id: str) -> MenuItem:
    item = await repository.get_by_id(item_id)
    if item is None or item.restaurant_id != restaurant_id:
        raise HTTPException(status_code=404, detail="Plat introuvable.")
    return item


@router.get("", response_model=List[MenuItem])
async def list_menu_items(
    category: Optional[str] = Query(default=None, max_length=100),
    active_only: bool = Query(default=False),
    restaurant_id: str = Depends(get_current_restaurant_id),
    repository: MenuItemRepository = Depends(get_menu_item_repository),
) -> List[MenuItem]:
    filters = {"restaurant_id": restaurant_id}
    if category:
        filters["category"] = category
    if active_only:
        filters["is_active"] = True
    try:
        return await repository.list(filters)
    except RecordStoreError as exc:
        raise_store_error(exc, context="list menu items")


@router.post("", response_model=MenuItem, status_code=201)
async def create_menu_item(
    payload: MenuItemCreatePayload,
    restaurant_id: str = Depends(get_current_restaurant_id),
    repository: MenuItemRepository = Depends(get_menu_item_repository),
) -> MenuItem:
    try:
        return await repository.create(MenuItem(restaurant_id=restaurant_id, **payload.model_dump()))
    except RecordStoreError as exc:
        raise_store_error(exc, context="create menu item")


@router.get("/enhancements/pending", response_model=List[MenuItem])
async def list_pending_enhancements(
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: EnhancementService = Depends(get_enhancement_service),
) -> List[MenuItem]:
    try:
        return await service.list_pending(restaurant_id)
    except RecordStoreError as exc:
        raise_store_error(exc, context="list pending enhancements")


@router.post("/enhancements", response_model=EnhancementResult)
async def enhance_menu_items(
    payload: EnhancementRequest,
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: EnhancementService = Depends(get_enhancement_service),
) -> EnhancementResult:
    """Generate enhanced descriptions; each one waits for approval."""

    try:
        return await service.enhance_items(restaurant_id, payload)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise_store_error(exc, context="enhance menu items")


@router.post("/taste-profiles", response_model=TasteProfileResult)
async def analyze_taste_profiles(
    payload: TasteProfileRequest,
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: TasteProfileService = Depends(get_taste_profile_service),
) -> TasteProfileResult:
    """Analyze the taste profile of the given items, or of the whole menu."""

    try:
        return await service.analyze_items(restaurant_id, payload)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise_store_error(exc, context="analyze taste profiles")


@router.get("/{item_id}", response_model=MenuItem)
async def get_menu_item(
    item_id: str,
    restaurant_id: str = Depends(get_current_restaurant_id),
    repository: MenuItemRepository = Depends(get_menu_item_repository),
) -> MenuItem:
    try:
        return await _get_owned_item(repository, restaurant_id, item_id)
    except RecordStoreError as exc:
        raise_store_error(exc, context="get menu item")


@router.patch("/{item_id}", response_model=MenuItem)
async def update_menu_item(
    item_id: str,
    payload: MenuItemPatch,
    restaurant_id: str = Depends(get_current_restaurant_id),
    repository: MenuItemRepository = Depends(get_menu_item_repository),
) -> MenuItem:
    """Apply only the fields present in the request body."""

    try:
        await _get_owned_item(repository, restaurant_id, item_id)
        return await repository.update(item_id, payload)
    except UnknownAttributeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise_store_error(exc, context="update menu item")


@router.delete("/{item_id}", status_code=204)
async def delete_menu_item(
    item_id: str,
    restaurant_id: str = Depends(get_current_restaurant_id),
    repository: MenuItemRepository = Depends(get_menu_item_repository),
) -> Response:
    try:
        await _get_owned_item(repository, restaurant_id, item_id)
        deleted = await repository.delete(item_id)
    except RecordStoreError as exc:
        raise_store_error(exc, context="delete menu item")
    if not deleted:
        raise HTTPException(status_code=404, detail="Plat introuvable.")
    return Response(status_code=204)


@router.post("/{item_id}/enhancement/decision", response_model=MenuItem)
async def decide_enhancement(
    item_id: str,
    payload: EnhancementDecisionPayload,
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: EnhancementService = Depends(get_enhancement_service),
) -> MenuItem:
    try:
        return await service.decide_enhancement(restaurant_id, item_id, payload.status)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Plat introuvable.") from exc
    except EnhancementStateError as exc:
        raise HTTPException(status_code=409, detail="Aucune description améliorée en attente pour ce plat.") from exc
    except RecordStoreError as exc:
        raise_store_error(exc, context="decide enhancement")


__all__ = ["router"]
