"""
Extraction Schemas

These models are the output contract of the extraction model. Whatever
Gemini returns is validated against them before the pipeline sees it.

CRITICAL: Validation is strict. A response that does not match the schema
is rejected as a whole; we never keep the parts that happened to parse.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceKind(str, Enum):
    """What the extraction model is asked to read."""
    STATEMENT = "statement"
    RECEIPT = "receipt"


def parse_iso_datetime(value: str) -> datetime:
    """
    Parse an ISO-8601 date or datetime string.

    Date-only values and naive datetimes are taken as UTC.
    Raises ValueError for anything else.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class _ExtractionModel(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")


class ExtractedTransaction(_ExtractionModel):
    """One line of a bank statement."""

    date: str = Field(..., description="ISO-8601 date of the transaction")
    amount: float = Field(
        ...,
        description="Signed amount: positive for money in, negative for money out"
    )
    description: str
    merchant: Optional[str] = None

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: str) -> str:
        parse_iso_datetime(v)
        return v


class ExtractedStatement(_ExtractionModel):
    """Structured content of a bank statement."""

    account_name: Optional[str] = None
    period_start: str = Field(..., description="ISO-8601 first day of the statement period")
    period_end: str = Field(..., description="ISO-8601 last day of the statement period")
    opening_balance: float
    closing_balance: float
    transactions: list[ExtractedTransaction]

    @field_validator('period_start', 'period_end')
    @classmethod
    def validate_dates(cls, v: str) -> str:
        parse_iso_datetime(v)
        return v


class ExtractedReceiptItem(_ExtractionModel):
    """One line of a receipt."""

    description: str
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_price: float


class ExtractedReceipt(_ExtractionModel):
    """Structured content of a purchase receipt."""

    date: str = Field(..., description="ISO-8601 purchase date")
    merchant: str
    total_amount: float
    tax_amount: Optional[float] = None
    items: list[ExtractedReceiptItem]

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: str) -> str:
        parse_iso_datetime(v)
        return v


SCHEMAS: dict[SourceKind, type[_ExtractionModel]] = {
    SourceKind.STATEMENT: ExtractedStatement,
    SourceKind.RECEIPT: ExtractedReceipt,
}
