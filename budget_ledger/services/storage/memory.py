"""
In-Memory Storage Implementation

Backs tests and local runs. Documents are deep-copied on the way in and out,
so callers can never mutate stored state by holding on to a dict.
"""

import copy
from typing import Any, Optional
from uuid import UUID, uuid4

from budget_ledger.models.audit import AuditEvent
from budget_ledger.services.storage.interface import (
    AuditStorageInterface,
    Document,
    DocumentNotFoundError,
    DocumentStoreInterface,
    DuplicateError,
)


class InMemoryDocumentStore(DocumentStoreInterface):
    """Dict-of-dicts document store: (user_id, collection) -> {doc_id: data}."""

    def __init__(self):
        self._collections: dict[tuple[str, str], dict[str, dict[str, Any]]] = {}

    def _collection(self, user_id: str, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault((user_id, collection), {})

    async def get_document(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
    ) -> Optional[Document]:
        data = self._collection(user_id, collection).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=copy.deepcopy(data))

    async def list_documents(
        self,
        user_id: str,
        collection: str,
    ) -> list[Document]:
        # dicts keep insertion order
        return [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collection(user_id, collection).items()
        ]

    async def insert_document(
        self,
        user_id: str,
        collection: str,
        data: dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        docs = self._collection(user_id, collection)
        doc_id = doc_id or uuid4().hex
        if doc_id in docs:
            raise DuplicateError(f"Document {collection}/{doc_id} already exists")
        docs[doc_id] = copy.deepcopy(data)
        return doc_id

    async def update_document(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
    ) -> None:
        docs = self._collection(user_id, collection)
        if doc_id not in docs:
            raise DocumentNotFoundError(f"Document not found: {collection}/{doc_id}")
        docs[doc_id].update(copy.deepcopy(fields))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
