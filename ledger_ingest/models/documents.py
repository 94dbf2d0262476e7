"""
Document Models for Ledger Ingest

These models define the shape of every document the pipeline reads or
writes in the per-user document store (``users/{uid}/{collection}``).
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Convert cleanly to and from store documents
4. Keep the document id out of the stored payload

DESIGN DECISION: Enum fields are stored as their plain string values
(``use_enum_values``) so documents stay readable by the mobile client.
The ``metadata`` envelope is stamped by the document store adapter, never
by callers.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class FileType(str, Enum):
    """Kinds of uploaded raw files."""
    PDF = "pdf"
    CSV = "csv"
    IMAGE = "image"
    EMAIL = "email"


class FileStatus(str, Enum):
    """
    Raw file processing status.

    pending -> processing -> (completed | failed). The last two are terminal.
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FileStatus.COMPLETED, FileStatus.FAILED)


class AccountType(str, Enum):
    """Bank account types."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    INVESTMENT = "investment"
    LOAN = "loan"
    OTHER = "other"


class CategoryType(str, Enum):
    """Category side of the ledger."""
    DEBIT = "debit"
    CREDIT = "credit"


# =============================================================================
# BASE DOCUMENT
# =============================================================================

class EntityMetadata(BaseModel):
    """System-managed timestamps carried by every document."""

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None


class StoredDocument(BaseModel):
    """
    Base class for everything persisted in the document store.

    Subclasses set ``collection`` to the per-user collection name.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        use_enum_values=True,
        extra="ignore",
    )

    collection: ClassVar[str] = ""

    id: Optional[str] = Field(
        default=None,
        description="Document id (not stored inside the document)"
    )
    metadata: Optional[EntityMetadata] = None

    def to_document(self) -> dict[str, Any]:
        """Payload to hand to the document store."""
        data = self.model_dump(exclude={"id", "metadata"})
        if self.metadata is not None:
            data["metadata"] = self.metadata.model_dump(exclude_none=True)
        return data

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]):
        """Build a model from a stored document and its id."""
        return cls.model_validate({**data, "id": doc_id})


# =============================================================================
# INGESTION DOCUMENTS
# =============================================================================

class RawFile(StoredDocument):
    """
    Upload record tracking one user-submitted file through ingestion.

    ``storage_path`` is relative to the user's blob prefix.
    """
    collection: ClassVar[str] = "rawFiles"

    filename: str = Field(..., min_length=1)
    file_type: FileType
    storage_path: str = Field(..., min_length=1)
    account_id: Optional[str] = Field(
        default=None,
        description="Target account, known only for statement uploads"
    )
    status: FileStatus = FileStatus.PENDING
    error_message: Optional[str] = None

    @classmethod
    def for_upload(
        cls,
        filename: str,
        file_type: FileType,
        storage_path: str,
        account_id: Optional[str] = None,
    ) -> "RawFile":
        """Pending record as created by the upload flow."""
        return cls(
            filename=filename,
            file_type=file_type,
            storage_path=storage_path,
            account_id=account_id,
            status=FileStatus.PENDING,
        )


class Statement(StoredDocument):
    """Extracted summary of one account period."""
    collection: ClassVar[str] = "statements"

    account_id: str
    raw_file_id: str
    period_start: datetime
    period_end: datetime
    opening_balance: float
    closing_balance: float
    is_validated: bool = False
    validation_errors: list[str] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_period(self) -> 'Statement':
        """Validate the statement period."""
        if self.period_end < self.period_start:
            raise ValueError("Statement period end cannot be before start")
        return self


class Transaction(StoredDocument):
    """
    A single monetary movement.

    Amount sign convention: positive = inflow, negative = outflow.
    """
    collection: ClassVar[str] = "transactions"
    # Extracted text is stored exactly as the model returned it
    model_config = ConfigDict(str_strip_whitespace=False)

    account_id: str
    statement_id: Optional[str] = None
    date: datetime
    amount: float
    description: str
    merchant: Optional[str] = None
    category_id: Optional[str] = None
    receipt_id: Optional[str] = None
    is_reconciled: bool = False


class Item(StoredDocument):
    """A single line on a receipt."""
    collection: ClassVar[str] = "items"
    model_config = ConfigDict(str_strip_whitespace=False)

    receipt_id: str
    description: str
    quantity: float = 1
    unit_price: float
    total_price: float
    category_id: Optional[str] = None


class Receipt(StoredDocument):
    """
    Extracted purchase record.

    ``items`` stays empty on the parent; line items live in the
    ``items`` collection and point back via ``receipt_id``.
    """
    collection: ClassVar[str] = "receipts"
    model_config = ConfigDict(str_strip_whitespace=False)

    raw_file_id: Optional[str] = None
    transaction_id: Optional[str] = None
    date: datetime
    merchant: str
    total_amount: float
    tax_amount: float = 0
    items: list[Item] = Field(default_factory=list)
    storage_path: Optional[str] = None


# =============================================================================
# REFERENCE DOCUMENTS (owned by other parts of the app)
# =============================================================================

class Account(StoredDocument):
    """Bank account. Referenced by id only; the pipeline never mutates it."""
    collection: ClassVar[str] = "accounts"

    name: str = Field(..., min_length=1)
    type: AccountType
    institution: Optional[str] = None
    account_number_last4: Optional[str] = Field(default=None, min_length=4, max_length=4)
    balance: float = 0
    currency: str = Field(default="USD", min_length=3, max_length=3)


class Category(StoredDocument):
    """Node in the per-user category tree."""
    collection: ClassVar[str] = "categories"

    name: str = Field(..., min_length=1)
    parent_id: Optional[str] = None
    type: CategoryType
    sort_order: int = 0


class UserProfile(BaseModel):
    """
    The top-level ``users/{uid}`` document.

    Only the fields the pipeline reads are modelled.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    gemini_api_key: Optional[str] = Field(
        default=None,
        alias="geminiApiKey",
        description="User-supplied Gemini API key"
    )

    @property
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key and self.gemini_api_key.strip())
