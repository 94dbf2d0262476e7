"""Blob storage services package."""

from ledger_ingest.services.blob.interface import (
    BlobNotFoundError,
    BlobStoreError,
    BlobStoreInterface,
    receipt_upload_path,
    statement_upload_path,
    user_blob_path,
)
from ledger_ingest.services.blob.cloud_storage import CloudStorageBlobStore
from ledger_ingest.services.blob.memory import InMemoryBlobStore

__all__ = [
    "BlobNotFoundError",
    "BlobStoreError",
    "BlobStoreInterface",
    "CloudStorageBlobStore",
    "InMemoryBlobStore",
    "receipt_upload_path",
    "statement_upload_path",
    "user_blob_path",
]
