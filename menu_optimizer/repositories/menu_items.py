"""Menu item persistence with enhancement history tracking."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from menu_optimizer.config.settings import MENU_ITEMS_TABLE
from menu_optimizer.repositories.base import GenericRepository, StatusTransitionError, jsonable, utcnow
from menu_optimizer.schemas import DecisionStatus, EnhancementRevision, MenuItem
from menu_optimizer.services.record_store import RecordNotFoundError

logger = logging.getLogger(__name__)

ENHANCEMENT_HISTORY_ATTRIBUTE = "enhancement_history"


class EnhancementStateError(StatusTransitionError):
    """Raised when an enhancement decision targets an item with nothing pending."""


class MenuItemRepository(GenericRepository[MenuItem]):
    model = MenuItem
    table = MENU_ITEMS_TABLE
    primary_key = "item_id"
    indexed_attributes = ("restaurant_id",)

    def _prepare_new(self, entity: MenuItem) -> MenuItem:
        entity = super()._prepare_new(entity)
        updates: Dict[str, Any] = {}
        if entity.is_active is None:
            updates["is_active"] = True
        if entity.is_ai_generated is None:
            updates["is_ai_generated"] = False
        if entity.updated_at is None:
            updates["updated_at"] = entity.created_at
        return entity.model_copy(update=updates) if updates else entity

    def _stamp_update(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        stamped = dict(attributes)
        stamped["updated_at"] = jsonable(utcnow())
        return stamped

    async def get_by_restaurant(self, restaurant_id: str) -> List[MenuItem]:
        return await self.list({"restaurant_id": restaurant_id})

    async def get_active_by_restaurant(
        self,
        restaurant_id: str,
        category: Optional[str] = None,
    ) -> List[MenuItem]:
        filters: Dict[str, Any] = {"restaurant_id": restaurant_id, "is_active": True}
        if category:
            filters["category"] = category
        return await self.list(filters)

    async def get_pending_enhancements(self, restaurant_id: str) -> List[MenuItem]:
        return await self.list({"restaurant_id": restaurant_id, "enhancement_status": "pending"})

    async def update_enhanced_description(
        self,
        item_id: str,
        enhanced_description: str,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> MenuItem:
        """Record a newly generated description and put it up for review.

        The revision is appended to the history in the store itself so that
        concurrent generations never overwrite each other's entries.
        """

        revision = EnhancementRevision(
            description=enhanced_description,
            created_at=utcnow(),
            parameters=dict(parameters or {}),
        )
        record = await self.store.append_to_list(
            self.table,
            self.primary_key,
            item_id,
            ENHANCEMENT_HISTORY_ATTRIBUTE,
            [revision.model_dump(mode="json")],
            set_attributes={
                "enhanced_description": enhanced_description,
                "enhancement_status": "pending",
                "updated_at": jsonable(revision.created_at),
            },
        )
        logger.info(
            "Enhanced description recorded",
            extra={"item_id": item_id, "history_length": len(record.get(ENHANCEMENT_HISTORY_ATTRIBUTE) or [])},
        )
        return self._from_record(record)

    async def update_enhanced_description_status(self, item_id: str, status: DecisionStatus) -> MenuItem:
        if status not in ("approved", "rejected"):
            raise ValueError(f"Statut d'amélioration invalide : {status}")

        current = await self.get_by_id(item_id)
        if current is None:
            raise RecordNotFoundError(f"MenuItem {item_id} introuvable.", status_code=404)
        if current.enhancement_status == status:
            return current
        if current.enhancement_status != "pending":
            raise EnhancementStateError(item_id, current.enhancement_status, status)
        return await self.update(item_id, {"enhancement_status": status})

    async def update_taste_profile(self, item_id: str, taste_profile: Mapping[str, Any]) -> MenuItem:
        return await self.update(item_id, {"taste_profile": dict(taste_profile)})


__all__ = ["MenuItemRepository", "EnhancementStateError"]
