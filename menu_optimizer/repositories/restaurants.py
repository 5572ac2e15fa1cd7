"""Restaurant profiles, one per owner account."""

from __future__ import annotations

from typing import Any, Dict, Optional

from menu_optimizer.config.settings import RESTAURANTS_TABLE
from menu_optimizer.repositories.base import GenericRepository
from menu_optimizer.schemas import Restaurant


class RestaurantRepository(GenericRepository[Restaurant]):
    model = Restaurant
    table = RESTAURANTS_TABLE
    primary_key = "restaurant_id"
    indexed_attributes = ("owner_id",)

    def _prepare_new(self, entity: Restaurant) -> Restaurant:
        entity = super()._prepare_new(entity)
        if entity.profile_setup_complete is None:
            entity = entity.model_copy(update={"profile_setup_complete": False})
        return entity

    async def get_by_owner_id(self, owner_id: str) -> Optional[Restaurant]:
        matches = await self.list({"owner_id": owner_id})
        return matches[0] if matches else None

    async def link_external_entity(
        self,
        restaurant_id: str,
        entity_id: str,
        *,
        cuisine: Optional[str] = None,
        price_level: Optional[int] = None,
    ) -> Restaurant:
        """Store the market-data entity the restaurant is matched to."""

        attributes: Dict[str, Any] = {"external_entity_id": entity_id}
        if cuisine:
            attributes["cuisine"] = cuisine
        if price_level is not None:
            attributes["price_level"] = price_level
        return await self.update(restaurant_id, attributes)

    async def mark_profile_setup_complete(self, restaurant_id: str) -> Restaurant:
        return await self.update(restaurant_id, {"profile_setup_complete": True})


__all__ = ["RestaurantRepository"]
