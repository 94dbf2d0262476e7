"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the pipeline against Firestore in production
2. Use in-memory storage for testing
3. Keep business logic decoupled from the storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every operation is scoped to one user: collections live under
``users/{user_id}/``. The only multi-document write is ``commit_batch``,
which must be all-or-nothing.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ledger_ingest.models.audit import AuditEvent


FilterOp = Literal["==", "!=", "<", "<=", ">", ">=", "in"]


class QueryFilter(BaseModel):
    """A single field condition. Dotted field paths reach into maps."""

    field: str
    op: FilterOp = "=="
    value: Any


class BatchWrite(BaseModel):
    """One document to create as part of an atomic batch."""

    collection: str
    doc_id: str
    data: dict[str, Any] = Field(default_factory=dict)


class DocumentSnapshot(BaseModel):
    """A document as returned by queries."""

    id: str
    data: dict[str, Any]


def stamp_created(data: dict[str, Any], now: datetime) -> dict[str, Any]:
    """Copy of ``data`` with the metadata envelope set for a new document."""
    stamped = dict(data)
    metadata = dict(stamped.get("metadata") or {})
    metadata.setdefault("created_at", now)
    metadata["updated_at"] = now
    stamped["metadata"] = metadata
    return stamped


def stamp_updated(data: dict[str, Any], now: datetime) -> dict[str, Any]:
    """Copy of an update payload that also bumps ``metadata.updated_at``."""
    stamped = {k: v for k, v in data.items() if k != "metadata"}
    stamped["metadata.updated_at"] = now
    return stamped


class DocumentStoreInterface(ABC):
    """
    Abstract interface for the per-user document store.

    Any storage implementation (Firestore, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    def new_id(self, user_id: str, collection: str) -> str:
        """
        Allocate a document id without writing anything.

        Used to build batches whose documents reference each other.
        """
        pass

    @abstractmethod
    async def create(
        self,
        user_id: str,
        collection: str,
        data: dict[str, Any],
    ) -> str:
        """
        Insert a new document with a generated id.

        Returns:
            The generated document id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
    ) -> Optional[dict[str, Any]]:
        """
        Read one document.

        Returns:
            The document data, or None if it doesn't exist
        """
        pass

    @abstractmethod
    async def update(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
    ) -> None:
        """
        Update fields of an existing document.

        Keys may be dotted paths into nested maps.

        Raises:
            NotFoundError: If the document doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
    ) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        pass

    @abstractmethod
    async def query(
        self,
        user_id: str,
        collection: str,
        filters: Optional[list[QueryFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        """
        Query a collection.

        Args:
            filters: Conditions that must all hold
            order_by: Field path to sort on
            descending: Sort direction
            limit: Maximum number of results

        Returns:
            Matching documents
        """
        pass

    @abstractmethod
    async def commit_batch(
        self,
        user_id: str,
        writes: list[BatchWrite],
    ) -> None:
        """
        Create several documents atomically.

        Either every write is persisted or none is.

        Raises:
            BatchCommitError: If the batch was not committed
        """
        pass

    @abstractmethod
    async def get_user_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        """
        Read the top-level ``users/{user_id}`` document.

        Returns:
            The profile data, or None if the user has no profile document
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
        user_id: str,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one pipeline run).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        user_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events for a user.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class BatchCommitError(StorageError):
    """An atomic batch was rejected; none of its writes were applied."""
    pass
