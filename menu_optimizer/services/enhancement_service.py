"""AI-enhanced menu descriptions and their approval."""

from __future__ import annotations

import logging
from typing import List

from menu_optimizer.config.openai_client import OPTIMIZER_MODEL
from menu_optimizer.repositories.menu_items import MenuItemRepository
from menu_optimizer.schemas import DecisionStatus, EnhancementRequest, EnhancementResult, MenuItem
from menu_optimizer.services.content_provider import ContentGenerationError, ContentProvider
from menu_optimizer.services.record_store import RecordNotFoundError, RecordStoreError

logger = logging.getLogger(__name__)


class EnhancementService:
    def __init__(self, *, menu_items: MenuItemRepository, provider: ContentProvider):
        self.menu_items = menu_items
        self.provider = provider

    async def _items_to_enhance(self, restaurant_id: str, item_ids: List[str]) -> List[MenuItem]:
        if not item_ids:
            return await self.menu_items.get_active_by_restaurant(restaurant_id)
        items: List[MenuItem] = []
        for item_id in item_ids:
            item = await self.menu_items.get_by_id(item_id)
            if item is None or item.restaurant_id != restaurant_id:
                raise RecordNotFoundError(f"Plat {item_id} introuvable.", status_code=404)
            items.append(item)
        return items

    async def enhance_items(self, restaurant_id: str, request: EnhancementRequest) -> EnhancementResult:
        """Generate a new description per item and leave each one pending review.

        Items are processed one by one; a failure on one item is reported in
        ``errors`` and does not stop the others.
        """

        items = await self._items_to_enhance(restaurant_id, request.item_ids)
        parameters = {
            "style": request.style,
            "target_audience": request.target_audience,
            "model": getattr(self.provider, "model", OPTIMIZER_MODEL),
        }
        result = EnhancementResult()
        for item in items:
            item_id = item.item_id or ""
            try:
                description = await self.provider.generate_enhanced_description(
                    item,
                    style=request.style,
                    target_audience=request.target_audience,
                )
                updated = await self.menu_items.update_enhanced_description(item_id, description, parameters)
            except (ContentGenerationError, RecordStoreError) as exc:
                logger.warning(
                    "Description enhancement failed",
                    extra={"restaurant_id": restaurant_id, "item_id": item_id, "error": str(exc)},
                )
                result.failed += 1
                result.errors[item_id] = str(exc)
                continue
            result.processed += 1
            result.items.append(updated)

        logger.info(
            "Description enhancement completed",
            extra={"restaurant_id": restaurant_id, "processed": result.processed, "failed": result.failed},
        )
        return result

    async def decide_enhancement(self, restaurant_id: str, item_id: str, status: DecisionStatus) -> MenuItem:
        item = await self.menu_items.get_by_id(item_id)
        if item is None or item.restaurant_id != restaurant_id:
            raise RecordNotFoundError(f"Plat {item_id} introuvable.", status_code=404)
        return await self.menu_items.update_enhanced_description_status(item_id, status)

    async def list_pending(self, restaurant_id: str) -> List[MenuItem]:
        return await self.menu_items.get_pending_enhancements(restaurant_id)


__all__ = ["EnhancementService"]
