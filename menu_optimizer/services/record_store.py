"""Record store contract shared by every repository.

The store is a table-per-entity document store: point reads and writes by
primary key, partial attribute updates, equality queries on indexed
attributes, filtered scans, bounded batch writes and a server-side list
append. ``PostgrestRecordStore`` in ``postgrest_client`` is the production
implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from menu_optimizer.config.settings import BATCH_WRITE_LIMIT

Record = Dict[str, Any]


class RecordStoreError(RuntimeError):
    """Base class for record store failures."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RecordNotFoundError(RecordStoreError):
    """Raised when an operation targets a key the store has no record for."""


class TransientStoreError(RecordStoreError):
    """Network or throughput failure; the single operation may be retried."""


class BatchWriteError(RecordStoreError):
    """Raised when a chunked write stops part way through."""

    def __init__(self, message: str, *, committed: int, failed: int):
        super().__init__(message)
        self.committed = committed
        self.failed = failed


class RecordStore(ABC):
    """Async access to the underlying tables."""

    batch_limit: int = BATCH_WRITE_LIMIT

    @abstractmethod
    async def get_item(self, table: str, key_name: str, key: str) -> Optional[Record]:
        ...

    @abstractmethod
    async def put_item(self, table: str, item: Record) -> Record:
        """Insert or fully replace a record."""

    @abstractmethod
    async def delete_item(self, table: str, key_name: str, key: str) -> bool:
        """Return False when nothing matched the key."""

    @abstractmethod
    async def update_item(
        self,
        table: str,
        key_name: str,
        key: str,
        attributes: Mapping[str, Any],
    ) -> Record:
        """Set the given attributes and return the full record.

        Raises ``RecordNotFoundError`` when the key does not exist.
        """

    @abstractmethod
    async def query(
        self,
        table: str,
        index_name: str,
        value: Any,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[Record]:
        """Index-backed lookup, optionally narrowed by equality filters."""

    @abstractmethod
    async def scan(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> List[Record]:
        """Full table read with an equality conjunction over ``filters``."""

    @abstractmethod
    async def batch_write(self, table: str, items: Sequence[Record]) -> None:
        """Write up to ``batch_limit`` records in a single call."""

    @abstractmethod
    async def append_to_list(
        self,
        table: str,
        key_name: str,
        key: str,
        attribute: str,
        values: Sequence[Any],
        set_attributes: Optional[Mapping[str, Any]] = None,
    ) -> Record:
        """Atomically append ``values`` to a list attribute, creating it if absent.

        ``set_attributes`` are written in the same operation. Raises
        ``RecordNotFoundError`` when the key does not exist.
        """

    def check_batch_size(self, items: Sequence[Record]) -> None:
        if len(items) > self.batch_limit:
            raise ValueError(
                f"Batch of {len(items)} records exceeds the store limit of {self.batch_limit}."
            )


__all__ = [
    "Record",
    "RecordStore",
    "RecordStoreError",
    "RecordNotFoundError",
    "TransientStoreError",
    "BatchWriteError",
]
