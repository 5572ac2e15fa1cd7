"""Taste profile analysis of menu items through the market-data API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from menu_optimizer.repositories.base import utcnow
from menu_optimizer.repositories.menu_items import MenuItemRepository
from menu_optimizer.schemas import MenuItem, TasteProfileRequest, TasteProfileResult
from menu_optimizer.services.market_data_service import MarketDataError, TasteProfileAnalyzer
from menu_optimizer.services.record_store import RecordNotFoundError, RecordStoreError

logger = logging.getLogger(__name__)

TASTE_PROFILE_VERSION = "1.0"
PROFILE_SECTIONS = ("taste_attributes", "dietary_compatibility", "appeal_factors", "demographic_appeal", "pairings")


def build_taste_profile_payload(item: MenuItem, request: TasteProfileRequest) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "name": item.name,
        "description": item.description,
        "price": item.price,
        "category": item.category,
        "metadata": {
            "item_id": item.item_id,
            "restaurant_id": item.restaurant_id,
            "is_active": item.is_active,
            "is_ai_generated": item.is_ai_generated,
        },
    }
    if request.include_ingredients and item.ingredients:
        payload["ingredients"] = list(item.ingredients)
    if request.include_dietary_tags and item.dietary_tags:
        payload["dietary_tags"] = list(item.dietary_tags)
    return payload


def build_taste_profile(response: Dict[str, Any], request: TasteProfileRequest) -> Dict[str, Any]:
    """Keep the known sections of the API answer and stamp the analysis context."""

    profile: Dict[str, Any] = {"taste_attributes": response.get("taste_attributes") or {}}
    for section in PROFILE_SECTIONS[1:]:
        if response.get(section) is not None:
            profile[section] = response[section]
    profile["analyzed_at"] = utcnow().isoformat()
    profile["version"] = TASTE_PROFILE_VERSION
    profile["analysis_context"] = {
        "included_ingredients": request.include_ingredients,
        "included_dietary_tags": request.include_dietary_tags,
    }
    return profile


class TasteProfileService:
    def __init__(self, *, menu_items: MenuItemRepository, analyzer: TasteProfileAnalyzer):
        self.menu_items = menu_items
        self.analyzer = analyzer

    async def _items_to_analyze(self, restaurant_id: str, item_ids: List[str]) -> List[MenuItem]:
        if not item_ids:
            items = await self.menu_items.get_by_restaurant(restaurant_id)
            if not items:
                raise RecordNotFoundError("Aucun plat à analyser pour ce restaurant.", status_code=404)
            return items
        items: List[MenuItem] = []
        for item_id in item_ids:
            item = await self.menu_items.get_by_id(item_id)
            if item is None or item.restaurant_id != restaurant_id:
                raise RecordNotFoundError(f"Plat {item_id} introuvable.", status_code=404)
            items.append(item)
        return items

    async def analyze_items(self, restaurant_id: str, request: TasteProfileRequest) -> TasteProfileResult:
        """Analyze each item in turn and store its profile; one failure does not stop the rest."""

        items = await self._items_to_analyze(restaurant_id, request.item_ids)
        result = TasteProfileResult()
        for item in items:
            item_id = item.item_id or ""
            try:
                response = await self.analyzer.analyze_taste_profile(build_taste_profile_payload(item, request))
                updated = await self.menu_items.update_taste_profile(item_id, build_taste_profile(response, request))
            except (MarketDataError, RecordStoreError) as exc:
                logger.warning(
                    "Taste profile analysis failed",
                    extra={"restaurant_id": restaurant_id, "item_id": item_id, "error": str(exc)},
                )
                result.failed += 1
                result.errors[item_id] = str(exc)
                continue
            result.processed += 1
            result.items.append(updated)

        logger.info(
            "Taste profile analysis completed",
            extra={"restaurant_id": restaurant_id, "processed": result.processed, "failed": result.failed},
        )
        return result


__all__ = ["TasteProfileService", "build_taste_profile", "build_taste_profile_payload"]
