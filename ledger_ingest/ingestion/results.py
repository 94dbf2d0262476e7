"""
Stage results and run outcomes.

Each pipeline stage returns a ``StageResult`` holding either its value or
the ``IngestionError`` that stopped it. The pipeline maps any error to the
failed status in one place instead of unwinding through every stage.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field

from ledger_ingest.errors import IngestionError
from ledger_ingest.ingestion.planning import ProcessingPlan
from ledger_ingest.models.documents import FileStatus


T = TypeVar("T")


@dataclass(frozen=True)
class StageResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[IngestionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: IngestionError) -> "StageResult[T]":
        return cls(error=error)


class MaterializedDocuments(BaseModel):
    """Ids written by one materialization: the parent and its children."""

    parent_id: str
    child_ids: list[str] = Field(default_factory=list)


class IngestionOutcome(BaseModel):
    """
    What one pipeline run did.

    ``status`` is the status last written to the raw file.
    """

    user_id: str
    file_id: str
    correlation_id: UUID
    status: FileStatus
    plan: Optional[ProcessingPlan] = None

    statement_id: Optional[str] = None
    transaction_ids: list[str] = Field(default_factory=list)
    receipt_id: Optional[str] = None
    item_ids: list[str] = Field(default_factory=list)

    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == FileStatus.COMPLETED
