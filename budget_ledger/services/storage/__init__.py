"""
Storage Services Package

Provides the abstract document-store interface and concrete implementations.
The in-memory store backs tests; Google Sheets is the household backend.
"""

from budget_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    Document,
    DocumentNotFoundError,
    DocumentStoreInterface,
    DuplicateError,
    StorageError,
)
from budget_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDocumentStore,
)
from budget_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "Document",
    "DocumentStoreInterface",
    # Exceptions
    "ConnectionError",
    "DocumentNotFoundError",
    "DuplicateError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
]
