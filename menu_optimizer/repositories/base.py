"""Generic CRUD repository over a pydantic entity stored in one table.

Subclasses declare the entity ``model``, the ``table`` it lives in, its
``primary_key`` attribute and the attributes backed by an index. Patches are
sparse: only the attributes they name are written, the primary key is never
part of an update, and an empty patch is answered with a read.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union
from uuid import uuid4

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from menu_optimizer.services.record_store import (
    BatchWriteError,
    Record,
    RecordNotFoundError,
    RecordStore,
    RecordStoreError,
)

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=BaseModel)
Patch = Union[Mapping[str, Any], BaseModel]


class RepositoryError(RuntimeError):
    """Base class for errors raised by the repository layer itself."""


class UnknownAttributeError(RepositoryError):
    """Raised when a patch or filter names an attribute the entity does not have."""

    def __init__(self, entity: str, attributes: Sequence[str]):
        super().__init__(f"{entity}: attributs inconnus {', '.join(sorted(attributes))}.")
        self.entity = entity
        self.attributes = list(attributes)


class StatusTransitionError(RepositoryError):
    """Raised when a status change would leave a terminal state."""

    def __init__(self, entity_id: str, current: str, requested: str):
        super().__init__(f"{entity_id}: transition {current} -> {requested} refusée.")
        self.entity_id = entity_id
        self.current = current
        self.requested = requested


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def jsonable(value: Any) -> Any:
    """Convert a python value to the JSON representation stored in the table."""

    return to_jsonable_python(value)


class GenericRepository(Generic[EntityT]):
    model: Type[EntityT]
    table: str
    primary_key: str
    indexed_attributes: Tuple[str, ...] = ()

    def __init__(self, store: RecordStore):
        self.store = store

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    def _to_record(self, entity: EntityT) -> Record:
        return entity.model_dump(mode="json")

    def _from_record(self, record: Mapping[str, Any]) -> EntityT:
        return self.model.model_validate(record)

    def _prepare_new(self, entity: EntityT) -> EntityT:
        """Assign identity and creation timestamp when the caller left them empty."""

        updates: Dict[str, Any] = {}
        if getattr(entity, self.primary_key, None) is None:
            updates[self.primary_key] = str(uuid4())
        if "created_at" in self.model.model_fields and getattr(entity, "created_at", None) is None:
            updates["created_at"] = utcnow()
        return entity.model_copy(update=updates) if updates else entity

    def _stamp_update(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        """Hook for subclasses that track a modification timestamp."""

        return attributes

    def _check_attributes(self, names: Sequence[str]) -> None:
        unknown = [name for name in names if name not in self.model.model_fields]
        if unknown:
            raise UnknownAttributeError(self.entity_name, unknown)

    def _patch_attributes(self, patch: Optional[Patch]) -> Dict[str, Any]:
        if patch is None:
            return {}
        if isinstance(patch, BaseModel):
            raw = patch.model_dump(mode="json", exclude_unset=True)
        else:
            raw = dict(patch)
        self._check_attributes(list(raw))
        raw.pop(self.primary_key, None)
        return {name: jsonable(value) for name, value in raw.items()}

    async def create(self, entity: EntityT) -> EntityT:
        prepared = self._prepare_new(entity)
        record = await self.store.put_item(self.table, self._to_record(prepared))
        return self._from_record(record)

    async def get_by_id(self, entity_id: str) -> Optional[EntityT]:
        record = await self.store.get_item(self.table, self.primary_key, entity_id)
        if record is None:
            return None
        return self._from_record(record)

    async def update(self, entity_id: str, patch: Optional[Patch]) -> EntityT:
        """Write only the attributes named by ``patch``.

        An empty patch performs no write and returns the current record; a
        missing id raises ``RecordNotFoundError`` in both cases.
        """

        attributes = self._patch_attributes(patch)
        if not attributes:
            current = await self.get_by_id(entity_id)
            if current is None:
                raise RecordNotFoundError(f"{self.entity_name} {entity_id} introuvable.", status_code=404)
            return current

        record = await self.store.update_item(
            self.table,
            self.primary_key,
            entity_id,
            self._stamp_update(attributes),
        )
        return self._from_record(record)

    async def delete(self, entity_id: str) -> bool:
        return await self.store.delete_item(self.table, self.primary_key, entity_id)

    async def list(self, filters: Optional[Mapping[str, Any]] = None) -> List[EntityT]:
        """Return entities matching every equality filter.

        The first filter naming an indexed attribute drives an index query and
        the others narrow it; without one the table is scanned.
        """

        criteria = {name: jsonable(value) for name, value in (filters or {}).items()}
        self._check_attributes(list(criteria))

        index_name = next((name for name in self.indexed_attributes if name in criteria), None)
        if index_name is not None:
            value = criteria.pop(index_name)
            records = await self.store.query(self.table, index_name, value, criteria or None)
        else:
            logger.debug(
                "Falling back to a table scan",
                extra={"table": self.table, "filters": sorted(criteria)},
            )
            records = await self.store.scan(self.table, criteria or None)
        return [self._from_record(record) for record in records]

    async def batch_create(self, entities: Sequence[EntityT]) -> List[EntityT]:
        """Create entities in chunks of at most ``store.batch_limit`` records.

        Chunks are written one after the other and are not atomic as a whole:
        when one fails the earlier chunks stay committed and ``BatchWriteError``
        reports how many entities made it.
        """

        prepared = [self._prepare_new(entity) for entity in entities]
        chunk_size = self.store.batch_limit
        committed = 0
        for start in range(0, len(prepared), chunk_size):
            chunk = prepared[start : start + chunk_size]
            try:
                await self.store.batch_write(self.table, [self._to_record(entity) for entity in chunk])
            except RecordStoreError as exc:
                failed = len(prepared) - committed
                logger.warning(
                    "Batch write interrupted",
                    extra={"table": self.table, "committed": committed, "failed": failed, "error": str(exc)},
                )
                raise BatchWriteError(
                    f"{self.entity_name}: {committed} enregistrés, {failed} en échec.",
                    committed=committed,
                    failed=failed,
                ) from exc
            committed += len(chunk)
        return prepared


__all__ = [
    "GenericRepository",
    "RepositoryError",
    "UnknownAttributeError",
    "StatusTransitionError",
    "Patch",
    "utcnow",
    "jsonable",
]
