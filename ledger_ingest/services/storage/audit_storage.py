"""
Audit storage on top of the document store.

Events are appended to the owning user's ``auditEvents`` collection so the
history of a raw file sits next to the file itself. Events without a user
cannot be stored and are rejected.
"""

from uuid import UUID

from ledger_ingest.models.audit import AuditEvent
from ledger_ingest.services.storage.interface import (
    AuditStorageInterface,
    DocumentStoreInterface,
    QueryFilter,
)


AUDIT_COLLECTION = "auditEvents"


class DocumentAuditStorage(AuditStorageInterface):
    """Append-only audit log stored per user."""

    def __init__(self, store: DocumentStoreInterface):
        self._store = store

    async def append_event(self, event: AuditEvent) -> bool:
        if not event.user_id:
            return False
        await self._store.create(event.user_id, AUDIT_COLLECTION, event.to_document())
        return True

    async def get_events_by_correlation_id(
        self,
        user_id: str,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        snapshots = await self._store.query(
            user_id,
            AUDIT_COLLECTION,
            filters=[QueryFilter(field="correlation_id", value=str(correlation_id))],
            order_by="timestamp",
        )
        return [AuditEvent.from_document(s.data) for s in snapshots]

    async def get_recent_events(
        self,
        user_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        snapshots = await self._store.query(
            user_id,
            AUDIT_COLLECTION,
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
        return [AuditEvent.from_document(s.data) for s in snapshots]
