"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a hosted database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Records are plain dicts in snake_case; the ledger models in
fintrack.models.records normalize them on the way in and out.

Each call is atomic per row. Nothing here is transactional across rows
or collections; multi-step mutations are sequenced by the reconciliation
saga instead.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from fintrack.models.records import Collection


CollectionName = Union[Collection, str]


def collection_name(collection: CollectionName) -> str:
    """Normalize a Collection enum or a plain name to the stored name."""
    if isinstance(collection, Collection):
        return collection.value
    return str(collection)


class RecordRepository(ABC):
    """
    Abstract interface for record storage operations.

    Any storage implementation (in-memory, Google Sheets, ...)
    must implement these methods.
    """

    @abstractmethod
    async def select(
        self,
        collection: CollectionName,
        user_id: Optional[str] = None,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        List records with optional equality filters.

        Args:
            collection: Collection to read
            user_id: Only records owned by this user
            filters: Field -> value equality filters
            order_by: Field to sort by
            descending: Sort newest/largest first
            limit: Maximum number of results

        Returns:
            List of matching records
        """
        pass

    @abstractmethod
    async def get(
        self,
        collection: CollectionName,
        record_id: str,
    ) -> Optional[dict[str, Any]]:
        """
        Retrieve a record by its ID.

        Args:
            collection: Collection to read
            record_id: The record's unique identifier

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert(
        self,
        collection: CollectionName,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Insert a new record.

        The store assigns id, created_at and updated_at when missing.

        Args:
            collection: Collection to write
            record: The record to save

        Returns:
            The stored record, including assigned fields

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(
        self,
        collection: CollectionName,
        record_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Apply field changes to an existing record.

        Args:
            collection: Collection to write
            record_id: The record's unique identifier
            changes: Fields to overwrite

        Returns:
            The updated record

        Raises:
            NotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(
        self,
        collection: CollectionName,
        record_id: str,
    ) -> bool:
        """
        Delete a record by ID.

        Args:
            collection: Collection to write
            record_id: The record's unique identifier

        Returns:
            True if a record was deleted, False if none existed
        """
        pass

    async def delete_where(
        self,
        collection: CollectionName,
        filters: dict[str, Any],
    ) -> int:
        """
        Delete every record matching the equality filters.

        Returns:
            Number of records deleted
        """
        deleted = 0
        for record in await self.select(collection, filters=filters):
            if await self.delete(collection, record["id"]):
                deleted += 1
        return deleted


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
