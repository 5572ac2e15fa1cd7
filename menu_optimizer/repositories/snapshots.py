"""One cached market-data snapshot per restaurant, replaced on every refresh."""

from __future__ import annotations

from typing import Optional, TypeVar

from menu_optimizer.config.settings import COMPETITOR_DISH_SNAPSHOTS_TABLE, DEMOGRAPHIC_SNAPSHOTS_TABLE
from menu_optimizer.repositories.base import GenericRepository, Patch, RepositoryError, utcnow
from menu_optimizer.schemas import CompetitorDishSnapshot, DemographicSnapshot

SnapshotT = TypeVar("SnapshotT", DemographicSnapshot, CompetitorDishSnapshot)


class SnapshotRepository(GenericRepository[SnapshotT]):
    primary_key = "restaurant_id"
    indexed_attributes = ("entity_id",)

    async def create_or_update(self, snapshot: SnapshotT) -> SnapshotT:
        """Overwrite the restaurant's snapshot as a whole, stamped with a fresh ``retrieved_at``."""

        fresh = snapshot.model_copy(update={"retrieved_at": utcnow()})
        record = await self.store.put_item(self.table, self._to_record(fresh))
        return self._from_record(record)

    async def update(self, entity_id: str, patch: Optional[Patch]) -> SnapshotT:
        raise RepositoryError(f"{self.entity_name}: un snapshot est remplacé en entier via create_or_update.")

    async def get_by_entity_id(self, entity_id: str) -> Optional[SnapshotT]:
        matches = await self.list({"entity_id": entity_id})
        return matches[0] if matches else None


class DemographicSnapshotRepository(SnapshotRepository[DemographicSnapshot]):
    model = DemographicSnapshot
    table = DEMOGRAPHIC_SNAPSHOTS_TABLE


class CompetitorDishSnapshotRepository(SnapshotRepository[CompetitorDishSnapshot]):
    model = CompetitorDishSnapshot
    table = COMPETITOR_DISH_SNAPSHOTS_TABLE


__all__ = [
    "SnapshotRepository",
    "DemographicSnapshotRepository",
    "CompetitorDishSnapshotRepository",
]
