"""Restaurant profile setup: creation, market-data linking and completion."""

from __future__ import annotations

import logging

from menu_optimizer.repositories.restaurants import RestaurantRepository
from menu_optimizer.schemas import Restaurant, RestaurantProfilePayload, RestaurantSelection
from menu_optimizer.services.record_store import RecordNotFoundError

logger = logging.getLogger(__name__)


class RestaurantProfileExistsError(RuntimeError):
    """Raised when an owner already has a restaurant profile."""

    def __init__(self, restaurant: Restaurant):
        super().__init__("Un restaurant existe déjà pour ce compte.")
        self.restaurant = restaurant


class RestaurantService:
    def __init__(self, *, restaurants: RestaurantRepository):
        self.restaurants = restaurants

    async def get(self, restaurant_id: str) -> Restaurant:
        restaurant = await self.restaurants.get_by_id(restaurant_id)
        if restaurant is None:
            raise RecordNotFoundError(f"Restaurant {restaurant_id} introuvable.", status_code=404)
        return restaurant

    async def setup_profile(self, owner_id: str, payload: RestaurantProfilePayload) -> Restaurant:
        """Create the owner's restaurant; an owner has at most one."""

        existing = await self.restaurants.get_by_owner_id(owner_id)
        if existing is not None:
            raise RestaurantProfileExistsError(existing)

        restaurant = await self.restaurants.create(
            Restaurant(owner_id=owner_id, name=payload.name, city=payload.city, state=payload.state)
        )
        logger.info(
            "Restaurant profile created",
            extra={"restaurant_id": restaurant.restaurant_id, "owner_id": owner_id},
        )
        return restaurant

    async def select_reference_entity(self, restaurant_id: str, selection: RestaurantSelection) -> Restaurant:
        """Link the restaurant to the entity used for demographic and competitor data."""

        await self.get(restaurant_id)
        restaurant = await self.restaurants.link_external_entity(
            restaurant_id,
            selection.entity_id,
            cuisine=selection.cuisine,
            price_level=selection.price_level,
        )
        logger.info(
            "Restaurant linked to market data entity",
            extra={"restaurant_id": restaurant_id, "entity_id": selection.entity_id},
        )
        return restaurant

    async def complete_setup(self, restaurant_id: str) -> Restaurant:
        await self.get(restaurant_id)
        return await self.restaurants.mark_profile_setup_complete(restaurant_id)


__all__ = ["RestaurantProfileExistsError", "RestaurantService"]
