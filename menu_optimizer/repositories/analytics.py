"""Per-item analytics scores and their trend series."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from menu_optimizer.config.settings import ANALYTICS_TABLE
from menu_optimizer.repositories.base import GenericRepository, jsonable, utcnow
from menu_optimizer.schemas import MenuAnalytics, TrendData

TRENDS_ATTRIBUTE = "trends"


class AnalyticsRepository(GenericRepository[MenuAnalytics]):
    model = MenuAnalytics
    table = ANALYTICS_TABLE
    primary_key = "analytics_id"
    indexed_attributes = ("restaurant_id",)

    def _prepare_new(self, entity: MenuAnalytics) -> MenuAnalytics:
        entity = super()._prepare_new(entity)
        if entity.last_updated is None:
            entity = entity.model_copy(update={"last_updated": utcnow()})
        return entity

    def _stamp_update(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        stamped = dict(attributes)
        stamped["last_updated"] = jsonable(utcnow())
        return stamped

    async def add_trend_data(self, analytics_id: str, trend: TrendData) -> MenuAnalytics:
        """Append one trend point; the list is created by the store when absent."""

        record = await self.store.append_to_list(
            self.table,
            self.primary_key,
            analytics_id,
            TRENDS_ATTRIBUTE,
            [trend.model_dump(mode="json")],
            set_attributes={"last_updated": jsonable(utcnow())},
        )
        return self._from_record(record)

    async def update_scores(
        self,
        analytics_id: str,
        *,
        popularity_score: Optional[float] = None,
        profitability_score: Optional[float] = None,
        recommendation_score: Optional[float] = None,
    ) -> MenuAnalytics:
        scores = {
            "popularity_score": popularity_score,
            "profitability_score": profitability_score,
            "recommendation_score": recommendation_score,
        }
        return await self.update(analytics_id, {name: value for name, value in scores.items() if value is not None})

    async def get_by_restaurant(self, restaurant_id: str) -> List[MenuAnalytics]:
        return await self.list({"restaurant_id": restaurant_id})

    async def get_by_item_id(self, item_id: str) -> Optional[MenuAnalytics]:
        matches = await self.list({"item_id": item_id})
        return matches[0] if matches else None


__all__ = ["AnalyticsRepository"]
