import asyncio
import copy
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from menu_optimizer.config.settings import (
    ANALYTICS_TABLE,
    COMPETITOR_DISH_SNAPSHOTS_TABLE,
    DEMOGRAPHIC_SNAPSHOTS_TABLE,
    MENU_ITEMS_TABLE,
    RESTAURANTS_TABLE,
    REVISION_CANDIDATES_TABLE,
    SUGGESTION_CANDIDATES_TABLE,
)
from menu_optimizer.repositories.analytics import AnalyticsRepository
from menu_optimizer.repositories.candidates import RevisionCandidateRepository, SuggestionCandidateRepository
from menu_optimizer.repositories.menu_items import MenuItemRepository
from menu_optimizer.repositories.restaurants import RestaurantRepository
from menu_optimizer.repositories.snapshots import (
    CompetitorDishSnapshotRepository,
    DemographicSnapshotRepository,
)
from menu_optimizer.services.content_provider import (
    ContentGenerationError,
    RevisionProposal,
    SuggestionProposal,
)
from menu_optimizer.services.record_store import (
    Record,
    RecordNotFoundError,
    RecordStore,
    TransientStoreError,
)

PRIMARY_KEYS = {
    RESTAURANTS_TABLE: "restaurant_id",
    MENU_ITEMS_TABLE: "item_id",
    REVISION_CANDIDATES_TABLE: "candidate_id",
    SUGGESTION_CANDIDATES_TABLE: "candidate_id",
    ANALYTICS_TABLE: "analytics_id",
    DEMOGRAPHIC_SNAPSHOTS_TABLE: "restaurant_id",
    COMPETITOR_DISH_SNAPSHOTS_TABLE: "restaurant_id",
}

WRITE_OPERATIONS = {"put_item", "update_item", "delete_item", "batch_write", "append_to_list"}


class InMemoryRecordStore(RecordStore):
    """Dict backed store that records every call it receives."""

    def __init__(self, *, fail_batch_after: Optional[int] = None, fail_updates_on: Sequence[str] = ()):
        self.tables: Dict[str, Dict[str, Record]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_batch_after = fail_batch_after
        self.fail_updates_on = set(fail_updates_on)

    def _table(self, table: str) -> Dict[str, Record]:
        return self.tables.setdefault(table, {})

    def _record(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))

    def count(self, operation: str, table: Optional[str] = None) -> int:
        return sum(1 for op, name in self.calls if op == operation and (table is None or name == table))

    @property
    def writes(self) -> int:
        return sum(1 for op, _ in self.calls if op in WRITE_OPERATIONS)

    def rows(self, table: str) -> List[Record]:
        return [copy.deepcopy(row) for row in self._table(table).values()]

    @staticmethod
    def _matches(record: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
        return all(record.get(name) == value for name, value in (filters or {}).items())

    async def get_item(self, table: str, key_name: str, key: str) -> Optional[Record]:
        self._record("get_item", table)
        record = self._table(table).get(key)
        return copy.deepcopy(record) if record is not None else None

    async def put_item(self, table: str, item: Record) -> Record:
        self._record("put_item", table)
        key = item[PRIMARY_KEYS[table]]
        self._table(table)[key] = copy.deepcopy(dict(item))
        return copy.deepcopy(dict(item))

    async def delete_item(self, table: str, key_name: str, key: str) -> bool:
        self._record("delete_item", table)
        return self._table(table).pop(key, None) is not None

    async def update_item(self, table: str, key_name: str, key: str, attributes: Mapping[str, Any]) -> Record:
        self._record("update_item", table)
        if key in self.fail_updates_on:
            raise TransientStoreError("store unavailable", status_code=503)
        record = self._table(table).get(key)
        if record is None:
            raise RecordNotFoundError(f"{table}: {key} missing", status_code=404)
        record.update(copy.deepcopy(dict(attributes)))
        return copy.deepcopy(record)

    async def query(
        self,
        table: str,
        index_name: str,
        value: Any,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[Record]:
        self._record("query", table)
        return [
            copy.deepcopy(record)
            for record in self._table(table).values()
            if record.get(index_name) == value and self._matches(record, filters)
        ]

    async def scan(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> List[Record]:
        self._record("scan", table)
        return [copy.deepcopy(record) for record in self._table(table).values() if self._matches(record, filters)]

    async def batch_write(self, table: str, items: Sequence[Record]) -> None:
        self.check_batch_size(items)
        if self.fail_batch_after is not None and self.count("batch_write", table) >= self.fail_batch_after:
            self._record("batch_write_failed", table)
            raise TransientStoreError("throughput exceeded", status_code=503)
        self._record("batch_write", table)
        rows = self._table(table)
        for item in items:
            rows[item[PRIMARY_KEYS[table]]] = copy.deepcopy(dict(item))

    async def append_to_list(
        self,
        table: str,
        key_name: str,
        key: str,
        attribute: str,
        values: Sequence[Any],
        set_attributes: Optional[Mapping[str, Any]] = None,
    ) -> Record:
        # Let other tasks run first, then read and write without yielding.
        await asyncio.sleep(0)
        self._record("append_to_list", table)
        record = self._table(table).get(key)
        if record is None:
            raise RecordNotFoundError(f"{table}: {key} missing", status_code=404)
        record[attribute] = list(record.get(attribute) or []) + copy.deepcopy(list(values))
        record.update(copy.deepcopy(dict(set_attributes or {})))
        return copy.deepcopy(record)


class FakeContentProvider:
    """Content provider returning canned proposals."""

    model = "fake-model"

    def __init__(
        self,
        *,
        revisions: Optional[List[RevisionProposal]] = None,
        suggestions: Optional[List[SuggestionProposal]] = None,
        description: str = "Une description plus gourmande.",
        fail: bool = False,
        fail_for: Sequence[str] = (),
    ):
        self.revisions = revisions
        self.suggestions = suggestions or []
        self.description = description
        self.fail = fail
        self.fail_for = set(fail_for)
        self.calls: List[str] = []

    async def generate_revisions(self, items, demographics, competitor_dishes, criteria):
        self.calls.append("revisions")
        if self.fail:
            raise ContentGenerationError("provider down")
        if self.revisions is not None:
            return list(self.revisions)
        return [
            RevisionProposal(
                item_id=item.item_id,
                proposed_name=f"{item.name} revisité",
                proposed_description=f"{item.description} Version améliorée.",
                rationale="Plus attirant.",
                demographic_insights=("25-34 (40%)",),
            )
            for item in items
        ]

    async def generate_suggestions(self, restaurant, competitor_dishes, existing_items, criteria):
        self.calls.append("suggestions")
        if self.fail:
            raise ContentGenerationError("provider down")
        return list(self.suggestions)

    async def generate_enhanced_description(self, item, *, style=None, target_audience=None):
        self.calls.append(f"enhance:{item.item_id}")
        if self.fail or item.item_id in self.fail_for:
            raise ContentGenerationError("provider down")
        return self.description


class Repositories:
    def __init__(self, store: InMemoryRecordStore):
        self.store = store
        self.menu_items = MenuItemRepository(store)
        self.revisions = RevisionCandidateRepository(store)
        self.suggestions = SuggestionCandidateRepository(store)
        self.analytics = AnalyticsRepository(store)
        self.restaurants = RestaurantRepository(store)
        self.demographics = DemographicSnapshotRepository(store)
        self.competitor_dishes = CompetitorDishSnapshotRepository(store)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def repos(store: InMemoryRecordStore) -> Repositories:
    return Repositories(store)
