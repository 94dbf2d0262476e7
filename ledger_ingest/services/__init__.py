"""Services package."""

from ledger_ingest.services.blob import (
    BlobNotFoundError,
    BlobStoreError,
    BlobStoreInterface,
    CloudStorageBlobStore,
    InMemoryBlobStore,
)
from ledger_ingest.services.extraction import GeminiExtractionService
from ledger_ingest.services.storage import (
    AuditStorageInterface,
    BatchCommitError,
    DocumentAuditStorage,
    DocumentStoreInterface,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Blob services
    "BlobNotFoundError",
    "BlobStoreError",
    "BlobStoreInterface",
    "CloudStorageBlobStore",
    "InMemoryBlobStore",
    # Extraction services
    "GeminiExtractionService",
    # Storage services
    "AuditStorageInterface",
    "BatchCommitError",
    "DocumentAuditStorage",
    "DocumentStoreInterface",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "NotFoundError",
    "StorageError",
]
