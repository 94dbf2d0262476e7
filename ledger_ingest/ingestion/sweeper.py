"""
Stale-processing sweep.

A run that crashes after marking its raw file ``processing`` leaves the
file there forever. The sweeper finds such files and fails them, so every
file eventually reaches a terminal status.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog

from ledger_ingest.audit import AuditLogger
from ledger_ingest.config import IngestionSettings, get_settings
from ledger_ingest.models.documents import FileStatus, RawFile, utcnow
from ledger_ingest.services.storage import (
    DocumentStoreInterface,
    QueryFilter,
    StorageError,
)


logger = structlog.get_logger(__name__)


def stale_message(minutes: int) -> str:
    return f"Processing did not finish within {minutes} minutes"


class ProcessingSweeper:
    """Marks raw files stuck in ``processing`` as failed."""

    def __init__(
        self,
        document_store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[IngestionSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = document_store
        self._audit = audit_logger or AuditLogger()
        self._minutes = (settings or get_settings().ingestion).stale_processing_minutes
        self._clock = clock

    async def sweep(self, user_id: str, now: Optional[datetime] = None) -> list[str]:
        """
        Fail every file of ``user_id`` that has been processing too long.

        Each file is re-read just before it is failed and skipped if a run
        has moved it on since the query. The re-read and the write are not
        one transaction, so a run finishing in between can still be
        overwritten. A file whose update fails is logged and left for the
        next sweep.

        Returns:
            Ids of the files marked failed
        """
        cutoff = (now or self._clock()) - timedelta(minutes=self._minutes)
        stale = await self._store.query(
            user_id,
            RawFile.collection,
            filters=[
                QueryFilter(field="status", value=FileStatus.PROCESSING.value),
                QueryFilter(field="metadata.updated_at", op="<", value=cutoff),
            ],
        )

        swept = []
        for snapshot in stale:
            try:
                if not await self._still_stale(user_id, snapshot.id, cutoff):
                    logger.info("stale_file_recovered", user_id=user_id, file_id=snapshot.id)
                    continue
                await self._store.update(
                    user_id,
                    RawFile.collection,
                    snapshot.id,
                    {
                        "status": FileStatus.FAILED.value,
                        "error_message": stale_message(self._minutes),
                    },
                )
            except StorageError as e:
                logger.warning(
                    "stale_file_update_failed",
                    user_id=user_id,
                    file_id=snapshot.id,
                    error=str(e),
                )
                continue
            await self._audit.log_stale_file_swept(user_id, snapshot.id, self._minutes)
            swept.append(snapshot.id)

        if swept:
            logger.info("stale_files_swept", user_id=user_id, count=len(swept))
        return swept

    async def _still_stale(self, user_id: str, file_id: str, cutoff: datetime) -> bool:
        data = await self._store.get(user_id, RawFile.collection, file_id)
        if data is None or data.get("status") != FileStatus.PROCESSING.value:
            return False
        updated_at = (data.get("metadata") or {}).get("updated_at")
        return updated_at is None or updated_at < cutoff
