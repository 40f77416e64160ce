"""Tests for the document stores and audit storage."""

import json
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from budget_ledger.audit import AuditLogger
from budget_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_ledger.services.storage import (
    DocumentNotFoundError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsDocumentStore,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    StorageError,
)
from budget_ledger.services.storage.google_sheets import AUDIT_COLUMNS, DOCUMENT_COLUMNS


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the stores."""

    def __init__(self, header: list[str]):
        self.rows = [list(header)]
        self.fail_appends = False

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        if self.fail_appends:
            raise RuntimeError("quota exceeded")
        self.rows.append([str(v) for v in values])

    def update_cell(self, row: int, col: int, value):
        self.rows[row - 1][col - 1] = str(value)


class FakeSheetsClient:

    def __init__(self):
        self.sheets: dict[str, FakeWorksheet] = {}
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_collection_sheet(self, collection: str) -> FakeWorksheet:
        return self.sheets.setdefault(collection, FakeWorksheet(DOCUMENT_COLUMNS))

    def get_audit_sheet(self) -> FakeWorksheet:
        return self.audit


@pytest.fixture
def sheets_client() -> FakeSheetsClient:
    return FakeSheetsClient()


@pytest.fixture(params=["memory", "sheets"])
def document_store(request, sheets_client):
    if request.param == "memory":
        return InMemoryDocumentStore()
    return GoogleSheetsDocumentStore(client=sheets_client)


class TestDocumentStore:
    """Contract shared by every backend."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, document_store):
        doc_id = await document_store.insert_document("u1", "savings_ledger", {"amount": "10"})

        document = await document_store.get_document("u1", "savings_ledger", doc_id)

        assert document.id == doc_id
        assert document.data == {"amount": "10"}

    @pytest.mark.asyncio
    async def test_documents_are_scoped_per_user(self, document_store):
        await document_store.insert_document("u1", "chamas", {"name": "A"}, doc_id="c1")

        assert await document_store.get_document("u2", "chamas", "c1") is None
        assert await document_store.list_documents("u2", "chamas") == []

    @pytest.mark.asyncio
    async def test_list_keeps_insertion_order(self, document_store):
        for n in range(3):
            await document_store.insert_document("u1", "transactions", {"n": n}, doc_id=f"t{n}")

        documents = await document_store.list_documents("u1", "transactions")

        assert [d.id for d in documents] == ["t0", "t1", "t2"]

    @pytest.mark.asyncio
    async def test_explicit_id_is_unique(self, document_store):
        await document_store.insert_document("u1", "savings_ledger", {"amount": "1"}, doc_id="e1")

        with pytest.raises(DuplicateError):
            await document_store.insert_document("u1", "savings_ledger", {"amount": "2"}, doc_id="e1")

        document = await document_store.get_document("u1", "savings_ledger", "e1")
        assert document.data == {"amount": "1"}

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, document_store):
        await document_store.insert_document(
            "u1", "transactions", {"amount": "5", "adjusted": False}, doc_id="t1",
        )

        await document_store.update_document("u1", "transactions", "t1", {"adjusted": True})

        document = await document_store.get_document("u1", "transactions", "t1")
        assert document.data == {"amount": "5", "adjusted": True}

    @pytest.mark.asyncio
    async def test_update_missing_document(self, document_store):
        with pytest.raises(DocumentNotFoundError):
            await document_store.update_document("u1", "transactions", "ghost", {"adjusted": True})


class TestInMemoryDocumentStore:

    @pytest.mark.asyncio
    async def test_returned_data_is_a_copy(self):
        store = InMemoryDocumentStore()
        data = {"tags": ["a"]}
        doc_id = await store.insert_document("u1", "budgets", data)
        data["tags"].append("b")

        document = await store.get_document("u1", "budgets", doc_id)
        document.data["tags"].append("c")

        again = await store.get_document("u1", "budgets", doc_id)
        assert again.data == {"tags": ["a"]}


class TestGoogleSheetsDocumentStore:

    @pytest.mark.asyncio
    async def test_row_layout(self, sheets_client):
        store = GoogleSheetsDocumentStore(client=sheets_client)

        await store.insert_document("u1", "chama_ledger", {"type": "payout"}, doc_id="e1")

        row = sheets_client.sheets["chama_ledger"].rows[1]
        assert row[0] == "u1"
        assert row[1] == "e1"
        assert json.loads(row[2]) == {"type": "payout"}
        assert row[3]

    @pytest.mark.asyncio
    async def test_failed_append_is_a_storage_error(self, sheets_client):
        store = GoogleSheetsDocumentStore(client=sheets_client)
        sheets_client.get_collection_sheet("savings_ledger").fail_appends = True

        with pytest.raises(StorageError):
            await store.insert_document("u1", "savings_ledger", {"amount": "1"})

    @pytest.mark.asyncio
    async def test_short_rows_are_ignored(self, sheets_client):
        store = GoogleSheetsDocumentStore(client=sheets_client)
        sheets_client.get_collection_sheet("budgets").rows.append(["u1"])

        assert await store.list_documents("u1", "budgets") == []


class TestAuditStorage:

    @pytest.fixture(params=["memory", "sheets"])
    def audit_store(self, request, sheets_client):
        if request.param == "memory":
            return InMemoryAuditStorage()
        return GoogleSheetsAuditStorage(client=sheets_client)

    @pytest.mark.asyncio
    async def test_events_by_correlation_id(self, audit_store):
        correlation_id = uuid4()
        await audit_store.append_event(AuditEvent(
            event_type=AuditEventType.TRANSFER_STARTED,
            user_id="u1",
            correlation_id=correlation_id,
            description="Transfer of 100 started",
            details={"amount": "100"},
        ))
        await audit_store.append_event(AuditEvent(
            event_type=AuditEventType.TRANSFER_INCOMPLETE,
            severity=AuditSeverity.CRITICAL,
            user_id="u1",
            correlation_id=correlation_id,
            description="Transfer stopped after debit",
            error_message="quota exceeded",
        ))
        await audit_store.append_event(AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            timestamp=datetime.now(timezone.utc) + timedelta(seconds=1),
            description="Budget 2025-06 created",
        ))

        events = await audit_store.get_events_by_correlation_id(correlation_id)

        assert [e.event_type for e in events] == [
            AuditEventType.TRANSFER_STARTED,
            AuditEventType.TRANSFER_INCOMPLETE,
        ]
        assert events[0].details == {"amount": "100"}
        assert events[1].severity == AuditSeverity.CRITICAL
        assert events[1].error_message == "quota exceeded"

        recent = await audit_store.get_recent_events(limit=1)
        assert recent[0].event_type == AuditEventType.BUDGET_CREATED


class TestAuditLogger:

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self, sheets_client):
        sheets_client.audit.fail_appends = True
        audit = AuditLogger(GoogleSheetsAuditStorage(client=sheets_client))

        stored = await audit.log(AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            description="Something broke",
        ))

        assert stored is False

    @pytest.mark.asyncio
    async def test_without_storage(self):
        audit = AuditLogger()
        assert await audit.log(AuditEvent(
            event_type=AuditEventType.BUDGET_CLOSED,
            description="Budget 2025-06 closed",
        )) is True
