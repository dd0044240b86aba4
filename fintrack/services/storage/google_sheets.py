"""
Google Sheets Storage Implementation

DESIGN DECISION: A spreadsheet is the hosted backend. The ledger of one
household is small, and the owner can open and audit it without tooling.

TRADEOFFS:
- Sheets has no transactions, so multi-step mutations go through the saga
- Filtering and ordering happen client-side after get_all_values()

Every collection is one worksheet with a fixed header. Only identity,
ownership and timestamps get their own columns; the rest of the record
is stored as JSON so schema additions never need a sheet migration.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fintrack.config import GoogleSheetsSettings, get_settings
from fintrack.services.storage.interface import (
    CollectionName,
    DuplicateError,
    NotFoundError,
    RecordRepository,
    StorageConnectionError,
    StorageError,
    collection_name,
)


RECORD_COLUMNS = [
    "id",
    "user_id",
    "created_at",
    "updated_at",
    "data_json",
]

_COLUMN_FIELDS = ("id", "user_id", "created_at", "updated_at")


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, Enum):
        return str(value.value)
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


def _normalize(value: Any) -> Any:
    """Bring a value into the shape it has after a sheet round-trip."""
    return json.loads(json.dumps(value, default=_json_default))


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str) -> gspread.Worksheet:
        """Get or create the worksheet for a collection."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(RECORD_COLUMNS),
            )
            sheet.append_row(RECORD_COLUMNS)
        return sheet


class GoogleSheetsRecordStore(RecordRepository):
    """
    Google Sheets implementation of the record store.

    One worksheet per collection, one record per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, record: dict[str, Any]) -> list:
        """Convert a record to a spreadsheet row."""
        data = {key: value for key, value in record.items() if key not in _COLUMN_FIELDS}
        return [
            str(record["id"]),
            record.get("user_id") or "",
            _json_default(record["created_at"]),
            _json_default(record["updated_at"]),
            json.dumps(data, default=_json_default),
        ]

    def _row_to_record(self, row: list) -> dict[str, Any]:
        """Convert a spreadsheet row to a record."""
        # Handle missing columns gracefully
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        record = json.loads(safe_get(4)) if safe_get(4) else {}
        record.update(
            id=safe_get(0),
            user_id=safe_get(1) or None,
            created_at=datetime.fromisoformat(safe_get(2)) if safe_get(2) else None,
            updated_at=datetime.fromisoformat(safe_get(3)) if safe_get(3) else None,
        )
        return record

    def _find_row(self, sheet: gspread.Worksheet, record_id: str) -> tuple[int, Optional[list]]:
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == str(record_id):
                return idx, row
        return -1, None

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
        criteria = _normalize(filters or {})
        try:
            sheet = self._client.get_sheet(collection_name(collection))
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list {collection_name(collection)}: {e}")

        records = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            record = self._row_to_record(row)
            if user_id is not None and record.get("user_id") != user_id:
                continue
            if any(record.get(key) != value for key, value in criteria.items()):
                continue
            records.append(record)

        if order_by:
            records.sort(
                key=lambda r: (r.get(order_by) is None, str(r.get(order_by) or "")),
                reverse=descending,
            )
        if limit is not None:
            records = records[:limit]
        return records

    async def get(
        self,
        collection: CollectionName,
        record_id: str,
    ) -> Optional[dict[str, Any]]:
        """Retrieve a record by its ID."""
        try:
            sheet = self._client.get_sheet(collection_name(collection))
            _, row = self._find_row(sheet, record_id)
        except Exception as e:
            raise StorageError(f"Failed to get record: {e}")
        return self._row_to_record(row) if row is not None else None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def insert(
        self,
        collection: CollectionName,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        """Append a record as a new row."""
        now = datetime.now(timezone.utc)
        stored = dict(record)
        stored["id"] = str(stored.get("id") or uuid4())
        stored.setdefault("created_at", now)
        stored["updated_at"] = now

        try:
            sheet = self._client.get_sheet(collection_name(collection))
            if self._find_row(sheet, stored["id"])[1] is not None:
                raise DuplicateError(f"Record already exists: {stored['id']}")
            sheet.append_row(self._record_to_row(stored), value_input_option="RAW")
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save record: {e}")
        return stored

    async def update(
        self,
        collection: CollectionName,
        record_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """Update an existing record in place."""
        try:
            sheet = self._client.get_sheet(collection_name(collection))
            idx, row = self._find_row(sheet, record_id)
            if row is None:
                raise NotFoundError(f"Record not found: {record_id}")

            record = self._row_to_record(row)
            record.update({key: value for key, value in changes.items() if key != "id"})
            record["updated_at"] = datetime.now(timezone.utc)

            sheet.update(
                f"A{idx}:E{idx}",
                [self._record_to_row(record)],
                value_input_option="RAW",
            )
            return record
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update record: {e}")

    async def delete(
        self,
        collection: CollectionName,
        record_id: str,
    ) -> bool:
        """Delete a record by ID."""
        try:
            sheet = self._client.get_sheet(collection_name(collection))
            idx, row = self._find_row(sheet, record_id)
            if row is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete record: {e}")
