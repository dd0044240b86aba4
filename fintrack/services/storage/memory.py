"""
In-Memory Storage Implementation

The reference RecordRepository. Used by the test suite and as the
default backend when no external store is configured.

Records are deep-copied on the way in and out, so callers can never
mutate stored state by holding on to a returned dict.
"""

import copy
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional
from uuid import uuid4

from fintrack.services.storage.interface import (
    CollectionName,
    DuplicateError,
    NotFoundError,
    RecordRepository,
    collection_name,
)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _sort_key(field: str):
    def key(record: dict[str, Any]):
        value = record.get(field)
        # None sorts last in ascending order
        return (value is None, value if value is not None else 0)
    return key


class InMemoryRecordStore(RecordRepository):
    """
    Dict-backed record store.

    Layout: {collection_name: {record_id: record}}. Insertion order is
    kept, so unordered selects return records oldest first.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _table(self, collection: CollectionName) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection_name(collection), {})

    async def select(
        self,
        collection: CollectionName,
        user_id: Optional[str] = None,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """List records with optional filters."""
        criteria = {key: _plain(value) for key, value in (filters or {}).items()}
        if user_id is not None:
            criteria["user_id"] = user_id

        records = [
            record for record in self._table(collection).values()
            if all(_plain(record.get(key)) == value for key, value in criteria.items())
        ]

        if order_by:
            records.sort(key=_sort_key(order_by), reverse=descending)
        if limit is not None:
            records = records[:limit]

        return copy.deepcopy(records)

    async def get(
        self,
        collection: CollectionName,
        record_id: str,
    ) -> Optional[dict[str, Any]]:
        """Retrieve a record by its ID."""
        record = self._table(collection).get(str(record_id))
        return copy.deepcopy(record) if record is not None else None

    async def insert(
        self,
        collection: CollectionName,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        """Insert a record, assigning id and timestamps."""
        table = self._table(collection)
        stored = {key: _plain(value) for key, value in copy.deepcopy(record).items()}

        record_id = str(stored.get("id") or uuid4())
        if record_id in table:
            raise DuplicateError(
                f"Record {record_id} already exists in {collection_name(collection)}"
            )

        now = self._clock()
        stored["id"] = record_id
        stored.setdefault("created_at", now)
        stored["updated_at"] = now
        table[record_id] = stored
        return copy.deepcopy(stored)

    async def update(
        self,
        collection: CollectionName,
        record_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply field changes to an existing record."""
        table = self._table(collection)
        existing = table.get(str(record_id))
        if existing is None:
            raise NotFoundError(
                f"Record not found in {collection_name(collection)}: {record_id}"
            )

        for key, value in copy.deepcopy(changes).items():
            if key == "id":
                continue
            existing[key] = _plain(value)
        existing["updated_at"] = self._clock()
        return copy.deepcopy(existing)

    async def delete(
        self,
        collection: CollectionName,
        record_id: str,
    ) -> bool:
        """Delete a record by ID."""
        return self._table(collection).pop(str(record_id), None) is not None
