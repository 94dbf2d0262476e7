"""
Audit Models for Ledger Ingest

Every significant step of a pipeline run is logged for audit purposes.
This provides:
1. Complete traceability of every raw file
2. Debugging information when extraction goes wrong
3. A record of orphaned documents left by failed batches
4. Ability to reconstruct what happened to a file

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from ledger_ingest.models.documents import utcnow


MAX_DESCRIPTION_LENGTH = 500

class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the ingestion pipeline has its own event type.
    """
    # Raw file lifecycle
    FILE_RECEIVED = "file_received"
    STATUS_CHANGED = "status_changed"
    FILE_SKIPPED = "file_skipped"
    PROCESSING_FAILED = "processing_failed"
    STALE_FILE_SWEPT = "stale_file_swept"

    # Fetch
    BLOB_FETCHED = "blob_fetched"

    # Extraction
    EXTRACTION_STARTED = "extraction_started"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"

    # Materialization
    STATEMENT_MATERIALIZED = "statement_materialized"
    RECEIPT_MATERIALIZED = "receipt_materialized"
    MATERIALIZATION_FAILED = "materialization_failed"

    # User setup
    CATEGORIES_SEEDED = "categories_seeded"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Whose data this is about
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the entity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'raw_file', 'statement', 'receipt')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Document id of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one pipeline run)"
    )

    description: str = Field(
        ...,
        max_length=MAX_DESCRIPTION_LENGTH,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def truncate_description(cls, v: Any) -> Any:
        """Descriptions embed caller-supplied text; clip rather than reject."""
        if isinstance(v, str) and len(v) > MAX_DESCRIPTION_LENGTH:
            return v[:MAX_DESCRIPTION_LENGTH - 3] + "..."
        return v

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_document(self) -> dict:
        """
        Convert to a document for the ``auditEvents`` collection.

        UUIDs become strings; the timestamp stays a datetime so the
        store keeps it as a native timestamp.
        """
        data = self.to_log_dict()
        data["timestamp"] = self.timestamp
        return data

    @classmethod
    def from_document(cls, data: dict) -> "AuditEvent":
        return cls.model_validate(data)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.file_received(user_id, file_id, "a.pdf", "pdf", cid)
        event = AuditEventBuilder.status_changed(user_id, file_id, "processing", cid)
    """

    @staticmethod
    def file_received(
        user_id: str,
        file_id: str,
        filename: str,
        file_type: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FILE_RECEIVED,
            user_id=user_id,
            entity_type="raw_file",
            entity_id=file_id,
            correlation_id=correlation_id,
            description=f"Raw {file_type} file received",
            details={
                "filename": filename,
                "file_type": file_type,
            },
        )

    @staticmethod
    def status_changed(
        user_id: str,
        file_id: str,
        status: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATUS_CHANGED,
            user_id=user_id,
            entity_type="raw_file",
            entity_id=file_id,
            correlation_id=correlation_id,
            description=f"Raw file status set to {status}",
            details={"status": status},
        )

    @staticmethod
    def blob_fetched(
        user_id: str,
        file_id: str,
        path: str,
        size: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BLOB_FETCHED,
            user_id=user_id,
            entity_type="raw_file",
            entity_id=file_id,
            correlation_id=correlation_id,
            description=f"Fetched {size} bytes",
            details={
                "path": path,
                "size_bytes": size,
            },
        )

    @staticmethod
    def file_skipped(
        user_id: str,
        file_id: str,
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FILE_SKIPPED,
            user_id=user_id,
            entity_type="raw_file",
            entity_id=file_id,
            correlation_id=correlation_id,
            description=f"No documents derived: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def extraction_started(
        user_id: str,
        file_id: str,
        source_kind: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_STARTED,
            user_id=user_id,
            entity_type="raw_file",
            entity_id=file_id,
            correlation_id=correlation_id,
            description=f"Requested {source_kind} extraction",
            details={"source_kind": source_kind},
        )

    @staticmethod
    def extraction_completed(
        user_id: str,
        file_id: str,
        source_kind: str,
        line_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            user_id=user_id,
            entity_type="raw_file",
            entity_id=file_id,
            correlation_id=correlation_id,
            description=f"Extracted {source_kind} with {line_count} lines",
            details={
                "source_kind": source_kind,
                "line_count": line_count,
            },
        )

    @staticmethod
    def statement_materialized(
        user_id: str,
        statement_id: str,
        file_id: str,
        transaction_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_MATERIALIZED,
            user_id=user_id,
            entity_type="statement",
            entity_id=statement_id,
            correlation_id=correlation_id,
            description=f"Statement saved with {transaction_count} transactions",
            details={
                "raw_file_id": file_id,
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def receipt_materialized(
        user_id: str,
        receipt_id: str,
        file_id: str,
        item_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_MATERIALIZED,
            user_id=user_id,
            entity_type="receipt",
            entity_id=receipt_id,
            correlation_id=correlation_id,
            description=f"Receipt saved with {item_count} items",
            details={
                "raw_file_id": file_id,
                "item_count": item_count,
            },
        )

    @staticmethod
    def processing_failed(
        user_id: str,
        file_id: str,
        error_kind: str,
        error_message: str,
        correlation_id: UUID,
        details: Optional[dict] = None
    ) -> AuditEvent:
        event_type = {
            "extraction_error": AuditEventType.EXTRACTION_FAILED,
            "materialization_error": AuditEventType.MATERIALIZATION_FAILED,
        }.get(error_kind, AuditEventType.PROCESSING_FAILED)
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="raw_file",
            entity_id=file_id,
            correlation_id=correlation_id,
            description=f"Processing failed ({error_kind})",
            error_code=error_kind,
            error_message=error_message,
            details=details or {},
        )

    @staticmethod
    def stale_file_swept(
        user_id: str,
        file_id: str,
        minutes: int
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STALE_FILE_SWEPT,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="raw_file",
            entity_id=file_id,
            description=f"Raw file stuck in processing for over {minutes} minutes",
            details={"stale_after_minutes": minutes},
        )

    @staticmethod
    def categories_seeded(
        user_id: str,
        category_count: int
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORIES_SEEDED,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            description=f"Seeded {category_count} default categories",
            details={"category_count": category_count},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
