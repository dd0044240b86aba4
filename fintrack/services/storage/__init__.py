"""
Storage Services Package

Provides the abstract record repository and its implementations.
The in-memory store is the default; Google Sheets is the hosted backend.
"""

from fintrack.services.storage.interface import (
    DuplicateError,
    NotFoundError,
    RecordRepository,
    StorageConnectionError,
    StorageError,
    collection_name,
)
from fintrack.services.storage.memory import InMemoryRecordStore
from fintrack.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    # Interface
    "RecordRepository",
    "collection_name",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # Implementations
    "InMemoryRecordStore",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
]
