"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is a good home for a household's ledgers:
1. The family can look at the raw entries directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the ledger core never assumes any)
- Limited query capabilities (we filter in Python)

Layout: one worksheet per collection, one document per row:
    [user_id, doc_id, data_json, updated_at]

Reads and connection setup are retried. Appends are NOT: a retried append
that actually landed the first time would duplicate a ledger entry.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from budget_ledger.config import GoogleSheetsSettings, get_settings
from budget_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    Document,
    DocumentNotFoundError,
    DocumentStoreInterface,
    DuplicateError,
    StorageError,
)


DOCUMENT_COLUMNS = [
    "user_id",
    "doc_id",
    "data_json",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

_DATA_COLUMN = DOCUMENT_COLUMNS.index("data_json") + 1
_UPDATED_COLUMN = DOCUMENT_COLUMNS.index("updated_at") + 1


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, worksheet lookup and retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        if title not in self._worksheets:
            spreadsheet = self.get_spreadsheet()
            try:
                sheet = spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                # Create the sheet with headers
                sheet = spreadsheet.add_worksheet(
                    title=title,
                    rows=rows,
                    cols=len(columns),
                )
                sheet.append_row(columns)
            self._worksheets[title] = sheet
        return self._worksheets[title]

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet holding one collection."""
        title = f"{self._settings.worksheet_prefix}{collection}"
        return self._get_or_create(title, DOCUMENT_COLUMNS, rows=1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsDocumentStore(DocumentStoreInterface):
    """
    Google Sheets implementation of the document store.

    Documents are JSON-serialized into a single cell; user_id and doc_id get
    their own columns so rows can be found without parsing every body.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self, collection: str) -> list[list[str]]:
        """All data rows of a collection sheet (header excluded)."""
        sheet = self._client.get_collection_sheet(collection)
        return sheet.get_all_values()[1:]

    @staticmethod
    def _row_matches(row: list[str], user_id: str, doc_id: Optional[str] = None) -> bool:
        if len(row) < _DATA_COLUMN or row[0] != user_id:
            return False
        return doc_id is None or row[1] == doc_id

    async def get_document(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
    ) -> Optional[Document]:
        try:
            rows = self._read_rows(collection)
        except Exception as e:
            raise StorageError(f"Failed to read {collection}: {e}")

        for row in rows:
            if self._row_matches(row, user_id, doc_id):
                return Document(id=row[1], data=json.loads(row[2] or "{}"))
        return None

    async def list_documents(
        self,
        user_id: str,
        collection: str,
    ) -> list[Document]:
        try:
            rows = self._read_rows(collection)
        except Exception as e:
            raise StorageError(f"Failed to list {collection}: {e}")

        documents = []
        for row in rows:
            if not self._row_matches(row, user_id):
                continue
            documents.append(Document(id=row[1], data=json.loads(row[2] or "{}")))
        return documents

    async def insert_document(
        self,
        user_id: str,
        collection: str,
        data: dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        if doc_id is not None:
            existing = await self.get_document(user_id, collection, doc_id)
            if existing is not None:
                raise DuplicateError(f"Document {collection}/{doc_id} already exists")
        doc_id = doc_id or uuid4().hex

        try:
            sheet = self._client.get_collection_sheet(collection)
            sheet.append_row(
                [
                    user_id,
                    doc_id,
                    json.dumps(data),
                    datetime.now(timezone.utc).isoformat(),
                ],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to insert into {collection}: {e}")
        return doc_id

    async def update_document(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
    ) -> None:
        try:
            rows = self._read_rows(collection)
            # Sheet row 1 is the header
            for idx, row in enumerate(rows, start=2):
                if self._row_matches(row, user_id, doc_id):
                    data = json.loads(row[2] or "{}")
                    data.update(fields)
                    sheet = self._client.get_collection_sheet(collection)
                    sheet.update_cell(idx, _DATA_COLUMN, json.dumps(data))
                    sheet.update_cell(
                        idx,
                        _UPDATED_COLUMN,
                        datetime.now(timezone.utc).isoformat(),
                    )
                    return
        except Exception as e:
            raise StorageError(f"Failed to update {collection}/{doc_id}: {e}")

        raise DocumentNotFoundError(f"Document not found: {collection}/{doc_id}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            user_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow; AuditLogger logs the failure
            raise StorageError(f"Failed to write audit event: {e}")

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            events.append(self._row_to_event(row))
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._read_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
