"""
Main Orchestrator for Ledger Ingest

Wires concrete adapters from settings and exposes the two event handlers
the hosting platform calls:

1. handle_raw_file_created  -> document created at users/{uid}/rawFiles/{fileId}
2. handle_user_created      -> a new user signed up; seed their categories

DESIGN DECISION: Components are built once per process by
``create_app_components`` and reused by the handlers. Tests and local runs
pass their own components instead.
"""

from typing import Any, NamedTuple, Optional

import structlog

from ledger_ingest.audit import AuditLogger
from ledger_ingest.categories import CategorySeeder
from ledger_ingest.config import Settings, get_settings
from ledger_ingest.ingestion import (
    IngestionOutcome,
    IngestionPipeline,
    ProcessingSweeper,
)
from ledger_ingest.services.blob import BlobStoreInterface, CloudStorageBlobStore
from ledger_ingest.services.extraction import GeminiExtractionService
from ledger_ingest.services.storage import (
    DocumentAuditStorage,
    DocumentStoreInterface,
    FirestoreDocumentStore,
)


logger = structlog.get_logger(__name__)


class AppComponents(NamedTuple):
    pipeline: IngestionPipeline
    seeder: CategorySeeder
    sweeper: ProcessingSweeper


def create_app_components(
    document_store: Optional[DocumentStoreInterface] = None,
    blob_store: Optional[BlobStoreInterface] = None,
    extraction_service: Optional[GeminiExtractionService] = None,
    settings: Optional[Settings] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        document_store: Defaults to Firestore
        blob_store: Defaults to Cloud Storage
        extraction_service: Defaults to Gemini
        settings: Defaults to the cached settings

    Returns:
        (pipeline, seeder, sweeper)
    """
    settings = settings or get_settings()
    ingestion = settings.ingestion

    if document_store is None:
        document_store = FirestoreDocumentStore()
    if blob_store is None:
        blob_store = CloudStorageBlobStore(settings=settings.firebase)
    if extraction_service is None:
        extraction_service = GeminiExtractionService(
            settings=settings.gemini,
            max_text_chars=ingestion.max_text_chars,
        )

    if ingestion.persist_audit_events:
        audit_logger = AuditLogger(DocumentAuditStorage(document_store))
    else:
        audit_logger = AuditLogger()  # Local-only logging

    return AppComponents(
        pipeline=IngestionPipeline(
            document_store,
            blob_store,
            extraction_service,
            audit_logger=audit_logger,
            settings=ingestion,
        ),
        seeder=CategorySeeder(document_store, audit_logger=audit_logger),
        sweeper=ProcessingSweeper(document_store, audit_logger=audit_logger, settings=ingestion),
    )


_components: Optional[AppComponents] = None


def get_app_components() -> AppComponents:
    """Process-wide components, created on first use."""
    global _components
    if _components is None:
        _components = create_app_components()
    return _components


async def handle_raw_file_created(
    user_id: str,
    file_id: str,
    data: dict[str, Any],
    components: Optional[AppComponents] = None,
) -> IngestionOutcome:
    """
    Entry point for a newly created raw file document.

    Raises:
        StatusWriteError: If a failure could not be recorded on the raw file
    """
    components = components or get_app_components()
    outcome = await components.pipeline.process_document(user_id, file_id, data)
    logger.info(
        "raw_file_processed",
        user_id=user_id,
        file_id=file_id,
        status=outcome.status.value,
        plan=outcome.plan.value if outcome.plan else None,
        correlation_id=str(outcome.correlation_id),
    )
    return outcome


async def handle_user_created(
    user_id: str,
    components: Optional[AppComponents] = None,
) -> Optional[dict[str, str]]:
    """
    Entry point for a newly created user.

    Seeding failures are logged and not raised; the user can still use the
    app and re-seed later.

    Returns:
        Category name -> id, or None if seeding failed
    """
    components = components or get_app_components()
    try:
        return await components.seeder.seed(user_id)
    except Exception as e:
        logger.error("category_seeding_failed", user_id=user_id, error=str(e))
        return None
