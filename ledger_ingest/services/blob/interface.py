"""
Abstract Blob Store Interface

Raw uploads live in a blob store, independent of the document store.
Raw-file documents hold a path relative to the owning user; the full
object path is always ``users/{user_id}/{relative_path}``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from ledger_ingest.models.documents import utcnow


def user_blob_path(user_id: str, relative_path: str) -> str:
    """Full object path for a path stored on a raw file."""
    return f"users/{user_id}/{relative_path.lstrip('/')}"


def _upload_stamp(timestamp: Optional[datetime]) -> int:
    # Milliseconds since the epoch, as the mobile client writes them
    return int((timestamp or utcnow()).timestamp() * 1000)


def statement_upload_path(
    account_id: str,
    filename: str,
    timestamp: Optional[datetime] = None,
) -> str:
    """Relative path for a statement upload targeting an account."""
    return f"statements/{account_id}/{_upload_stamp(timestamp)}_{filename}"


def receipt_upload_path(
    filename: str,
    timestamp: Optional[datetime] = None,
) -> str:
    """Relative path for a receipt upload."""
    return f"receipts/{_upload_stamp(timestamp)}_{filename}"


class BlobStoreInterface(ABC):
    """
    Abstract interface for raw file bytes.

    Paths passed here are full object paths (see ``user_blob_path``).
    """

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """
        Fetch the bytes stored at ``path``.

        Raises:
            BlobNotFoundError: If nothing is stored there
            BlobStoreError: For any other failure
        """
        pass

    @abstractmethod
    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> None:
        """Store bytes at ``path``, replacing anything already there."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove the object at ``path``. Missing objects are ignored."""
        pass


class BlobStoreError(Exception):
    """Base exception for blob store operations."""
    pass


class BlobNotFoundError(BlobStoreError):
    """No object stored at the requested path."""
    pass
