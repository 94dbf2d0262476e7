"""
Processing decisions.

What happens to a raw file is decided once, up front, from its type and
whether it names a target account. Nothing here touches I/O, so the branch
logic of the pipeline can be tested on its own.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from ledger_ingest.models.documents import FileType, RawFile
from ledger_ingest.models.extraction import SourceKind


class ProcessingPlan(str, Enum):
    STATEMENT = "statement"
    RECEIPT = "receipt"
    SKIP = "skip"


class ProcessingDecision(BaseModel):
    """The plan for one raw file and why it was chosen."""

    plan: ProcessingPlan
    reason: str

    @property
    def source_kind(self) -> Optional[SourceKind]:
        if self.plan == ProcessingPlan.STATEMENT:
            return SourceKind.STATEMENT
        if self.plan == ProcessingPlan.RECEIPT:
            return SourceKind.RECEIPT
        return None


def plan_processing(raw_file: RawFile) -> ProcessingDecision:
    """
    Decide how to process a raw file.

    - pdf/csv with an account -> statement
    - pdf/csv without an account -> skip (no target to attach it to)
    - image -> receipt
    - anything else -> skip
    """
    file_type = FileType(raw_file.file_type)

    if file_type in (FileType.PDF, FileType.CSV):
        if raw_file.account_id:
            return ProcessingDecision(
                plan=ProcessingPlan.STATEMENT,
                reason=f"{file_type.value} statement for account {raw_file.account_id}",
            )
        return ProcessingDecision(
            plan=ProcessingPlan.SKIP,
            reason=f"{file_type.value} upload has no target account",
        )

    if file_type == FileType.IMAGE:
        return ProcessingDecision(
            plan=ProcessingPlan.RECEIPT,
            reason="image upload treated as a receipt",
        )

    return ProcessingDecision(
        plan=ProcessingPlan.SKIP,
        reason=f"{file_type.value} files are not extracted",
    )
