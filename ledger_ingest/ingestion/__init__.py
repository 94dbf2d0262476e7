"""
Ingestion package.

The pipeline, its pure planning and decoding steps, materialization of
extracted data and the stale-processing sweep.
"""

from ledger_ingest.ingestion.decoding import decode_content
from ledger_ingest.ingestion.materializer import (
    DocumentMaterializer,
    build_items,
    build_receipt,
    build_statement,
    build_transactions,
)
from ledger_ingest.ingestion.pipeline import IngestionPipeline
from ledger_ingest.ingestion.planning import (
    ProcessingDecision,
    ProcessingPlan,
    plan_processing,
)
from ledger_ingest.ingestion.results import (
    IngestionOutcome,
    MaterializedDocuments,
    StageResult,
)
from ledger_ingest.ingestion.sweeper import ProcessingSweeper, stale_message

__all__ = [
    "DocumentMaterializer",
    "IngestionOutcome",
    "IngestionPipeline",
    "MaterializedDocuments",
    "ProcessingDecision",
    "ProcessingPlan",
    "ProcessingSweeper",
    "StageResult",
    "build_items",
    "build_receipt",
    "build_statement",
    "build_transactions",
    "decode_content",
    "plan_processing",
    "stale_message",
]
