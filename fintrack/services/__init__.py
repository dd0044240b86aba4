"""Services package."""

from fintrack.services.rates import (
    FrankfurterRateSource,
    RateProvider,
    RateSource,
    RateSourceError,
)
from fintrack.services.storage import (
    DuplicateError,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    NotFoundError,
    RecordRepository,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Rate services
    "FrankfurterRateSource",
    "RateProvider",
    "RateSource",
    "RateSourceError",
    # Storage services
    "DuplicateError",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "InMemoryRecordStore",
    "NotFoundError",
    "RecordRepository",
    "StorageConnectionError",
    "StorageError",
]
