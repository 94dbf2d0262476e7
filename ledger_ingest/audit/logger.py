"""
Audit Logger

DESIGN DECISION: Every significant step of a pipeline run is logged.
This provides:
1. Complete traceability of every raw file
2. Debugging capability when extraction misbehaves
3. A trail of orphaned documents after failed batches

The audit logger:
- Is async to fit the pipeline
- Gracefully handles failures (a broken audit store never fails a file)
- Supports correlation IDs to trace the events of one run
"""

from typing import Any, Callable, Optional
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError

from ledger_ingest.models.audit import AuditEvent, AuditEventBuilder
from ledger_ingest.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledger_ingest.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def _emit(self, build: Callable[..., AuditEvent], *args: Any, **kwargs: Any) -> bool:
        """Build an event and log it; a malformed event is reported, never raised."""
        try:
            event = build(*args, **kwargs)
        except ValidationError as e:
            self._logger.error(
                "audit_event_invalid",
                builder=build.__name__,
                error=str(e),
            )
            return False
        return await self.log(event)

    async def log_file_received(
        self,
        user_id: str,
        file_id: str,
        filename: str,
        file_type: str,
        correlation_id: UUID,
    ) -> None:
        """Log the start of a pipeline run."""
        await self._emit(
            AuditEventBuilder.file_received,
            user_id, file_id, filename, file_type, correlation_id,
        )

    async def log_status_changed(
        self,
        user_id: str,
        file_id: str,
        status: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self._emit(
            AuditEventBuilder.status_changed,
            user_id, file_id, status, correlation_id,
        )

    async def log_blob_fetched(
        self,
        user_id: str,
        file_id: str,
        path: str,
        size: int,
        correlation_id: UUID,
    ) -> None:
        await self._emit(
            AuditEventBuilder.blob_fetched,
            user_id, file_id, path, size, correlation_id,
        )

    async def log_file_skipped(
        self,
        user_id: str,
        file_id: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self._emit(
            AuditEventBuilder.file_skipped,
            user_id, file_id, reason, correlation_id,
        )

    async def log_extraction_started(
        self,
        user_id: str,
        file_id: str,
        source_kind: str,
        correlation_id: UUID,
    ) -> None:
        await self._emit(
            AuditEventBuilder.extraction_started,
            user_id, file_id, source_kind, correlation_id,
        )

    async def log_extraction_completed(
        self,
        user_id: str,
        file_id: str,
        source_kind: str,
        line_count: int,
        correlation_id: UUID,
    ) -> None:
        await self._emit(
            AuditEventBuilder.extraction_completed,
            user_id, file_id, source_kind, line_count, correlation_id,
        )

    async def log_statement_materialized(
        self,
        user_id: str,
        statement_id: str,
        file_id: str,
        transaction_count: int,
        correlation_id: UUID,
    ) -> None:
        await self._emit(
            AuditEventBuilder.statement_materialized,
            user_id, statement_id, file_id, transaction_count, correlation_id,
        )

    async def log_receipt_materialized(
        self,
        user_id: str,
        receipt_id: str,
        file_id: str,
        item_count: int,
        correlation_id: UUID,
    ) -> None:
        await self._emit(
            AuditEventBuilder.receipt_materialized,
            user_id, receipt_id, file_id, item_count, correlation_id,
        )

    async def log_processing_failed(
        self,
        user_id: str,
        file_id: str,
        error_kind: str,
        error_message: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        """Log a run that ended in the failed status."""
        await self._emit(
            AuditEventBuilder.processing_failed,
            user_id, file_id, error_kind, error_message, correlation_id, details,
        )

    async def log_stale_file_swept(
        self,
        user_id: str,
        file_id: str,
        minutes: int,
    ) -> None:
        await self._emit(AuditEventBuilder.stale_file_swept, user_id, file_id, minutes)

    async def log_categories_seeded(
        self,
        user_id: str,
        category_count: int,
    ) -> None:
        await self._emit(AuditEventBuilder.categories_seeded, user_id, category_count)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self._emit(
            AuditEventBuilder.system_error,
            error_type=error_type,
            error_message=error_message,
            user_id=user_id,
            details=details,
            correlation_id=correlation_id,
        )

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        """Log external service error."""
        await self._emit(
            AuditEventBuilder.external_service_error,
            service=service,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        )


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a pipeline run and pass it through all
    subsequent operations.
    """
    return uuid4()
