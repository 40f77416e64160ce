"""
Shared fixtures for the ledger tests.

Everything runs against the in-memory document store. FailingDocumentStore
injects store errors on chosen writes so the partial-write paths can be
exercised without a real backend.
"""

from decimal import Decimal
from typing import Any, Optional

import pytest
import pytest_asyncio

from budget_ledger.audit import AuditLogger
from budget_ledger.config import LedgerSettings
from budget_ledger.ledger import make_entry
from budget_ledger.models.ledger import Direction, EntrySource, LedgerKind, PoolRef
from budget_ledger.orchestrator import LedgerService
from budget_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    StorageError,
)


USER_ID = "user-1"


class FailingDocumentStore(InMemoryDocumentStore):
    """
    In-memory store that raises StorageError on selected writes.

    fail_insert(collection, after=n) lets n more inserts into the collection
    succeed and fails the one after that (and every later one).
    """

    def __init__(self):
        super().__init__()
        self._insert_budget: dict[str, int] = {}
        self._insert_errors: dict[str, Exception] = {}
        self._failing_updates: set[str] = set()
        self.failed_writes = 0

    def fail_insert(self, collection: str, after: int = 0, error: Optional[Exception] = None) -> None:
        self._insert_budget[collection] = after
        if error is not None:
            self._insert_errors[collection] = error

    def fail_update(self, collection: str) -> None:
        self._failing_updates.add(collection)

    def heal(self) -> None:
        self._insert_budget.clear()
        self._insert_errors.clear()
        self._failing_updates.clear()

    async def insert_document(
        self,
        user_id: str,
        collection: str,
        data: dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        if collection in self._insert_budget:
            if self._insert_budget[collection] <= 0:
                self.failed_writes += 1
                raise self._insert_errors.get(collection) or StorageError(f"injected insert failure on {collection}")
            self._insert_budget[collection] -= 1
        return await super().insert_document(user_id, collection, data, doc_id)

    async def update_document(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
    ) -> None:
        if collection in self._failing_updates:
            self.failed_writes += 1
            raise StorageError(f"injected update failure on {collection}")
        await super().update_document(user_id, collection, doc_id, fields)


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        savings_category="Savings",
        recovered_category="Money Recovered",
        lost_category="Money Lost",
        excess_category="Miscellaneous",
        excess_budget_month="2026-01",
        storage_backend="memory",
    )


@pytest.fixture
def store() -> FailingDocumentStore:
    return FailingDocumentStore()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def service(store, audit_storage, ledger_settings) -> LedgerService:
    return LedgerService(
        store,
        audit_logger=AuditLogger(audit_storage),
        settings=ledger_settings,
    )


@pytest_asyncio.fixture
async def chama_pool_funded(service, user_id) -> LedgerService:
    """5000 in the unallocated chama pool, as in the allocation walkthrough."""
    await service.ledgers.chama.append(user_id, make_entry(
        PoolRef(kind=LedgerKind.CHAMA),
        Direction.INCREASE,
        Decimal("5000"),
        EntrySource.MANUAL,
        note="Opening pool",
    ))
    return service
