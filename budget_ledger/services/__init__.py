"""Services package."""

from budget_ledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    Document,
    DocumentNotFoundError,
    DocumentStoreInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "Document",
    "DocumentNotFoundError",
    "DocumentStoreInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    "StorageError",
]
