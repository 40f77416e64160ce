"""
Abstract Storage Interface

DESIGN DECISION: The ledger core never talks to a concrete database.
It depends on a small document-collection interface:
1. get / list / insert / update - nothing else
2. Documents are keyed by user, collection and an opaque id
3. No multi-document transactions are assumed
4. No foreign keys - references between documents are best-effort

This lets us run on an in-memory store in tests, Google Sheets for a
household, or anything else that can hold JSON documents.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from budget_ledger.models.audit import AuditEvent


class Document(BaseModel):
    """A stored document: its id plus its JSON-safe data."""

    id: str
    data: dict[str, Any]


class DocumentStoreInterface(ABC):
    """
    Abstract interface for per-user document collections.

    Any storage implementation (in-memory, Google Sheets, Firestore, ...)
    must implement these methods.
    """

    @abstractmethod
    async def get_document(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
    ) -> Optional[Document]:
        """
        Retrieve one document.

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_documents(
        self,
        user_id: str,
        collection: str,
    ) -> list[Document]:
        """
        List every document in a user's collection, in insertion order.

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def insert_document(
        self,
        user_id: str,
        collection: str,
        data: dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        """
        Insert a new document.

        Args:
            data: JSON-safe document body
            doc_id: Caller-chosen id (used as an idempotency key).
                    If None the store assigns an opaque id.

        Returns:
            The id of the new document

        Raises:
            DuplicateError: If doc_id is already taken
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_document(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Merge fields into an existing document.

        Raises:
            DocumentNotFoundError: If the document doesn't exist
            StorageError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., both sides of one transfer).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DocumentNotFoundError(StorageError):
    """Document not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a document whose id is already taken."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
