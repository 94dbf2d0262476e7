"""
Data Models Package

This package contains all Pydantic models used in Ledger Ingest.
All data flowing through the system must conform to these schemas.
"""

from ledger_ingest.models.documents import (
    Account,
    AccountType,
    Category,
    CategoryType,
    EntityMetadata,
    FileStatus,
    FileType,
    Item,
    RawFile,
    Receipt,
    Statement,
    StoredDocument,
    Transaction,
    UserProfile,
)
from ledger_ingest.models.extraction import (
    ExtractedReceipt,
    ExtractedReceiptItem,
    ExtractedStatement,
    ExtractedTransaction,
    SourceKind,
    parse_iso_datetime,
)
from ledger_ingest.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Document models
    "Account",
    "AccountType",
    "Category",
    "CategoryType",
    "EntityMetadata",
    "FileStatus",
    "FileType",
    "Item",
    "RawFile",
    "Receipt",
    "Statement",
    "StoredDocument",
    "Transaction",
    "UserProfile",
    # Extraction models
    "ExtractedReceipt",
    "ExtractedReceiptItem",
    "ExtractedStatement",
    "ExtractedTransaction",
    "SourceKind",
    "parse_iso_datetime",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
