"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Firestore is the production backend; the in-memory store backs the tests.
"""

from ledger_ingest.services.storage.interface import (
    AuditStorageInterface,
    BatchCommitError,
    BatchWrite,
    DocumentSnapshot,
    DocumentStoreInterface,
    NotFoundError,
    QueryFilter,
    StorageError,
)
from ledger_ingest.services.storage.audit_storage import (
    AUDIT_COLLECTION,
    DocumentAuditStorage,
)
from ledger_ingest.services.storage.firestore import (
    FirestoreDocumentStore,
    create_firestore_client,
)
from ledger_ingest.services.storage.memory import InMemoryDocumentStore

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DocumentStoreInterface",
    # Value types
    "BatchWrite",
    "DocumentSnapshot",
    "QueryFilter",
    # Exceptions
    "BatchCommitError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "AUDIT_COLLECTION",
    "DocumentAuditStorage",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "create_firestore_client",
]
