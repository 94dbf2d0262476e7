"""
Ingestion Pipeline

Drives one raw file through its lifecycle:

    pending -> processing -> (completed | failed)

Flow:
1. Mark processing  -> before any extraction starts
2. Fetch            -> bytes from users/{uid}/{storage_path}
3. Decode           -> base64 (pdf), bytes (image) or text
4. Resolve key      -> the user's Gemini API key from their profile
5. Run plan         -> STATEMENT / RECEIPT extract + materialize, SKIP does nothing
6. Mark completed

DESIGN DECISION: Each stage returns a StageResult instead of raising.
Every failure is recorded on the raw file in exactly one place (``_fail``).
The only exception that leaves ``process`` is StatusWriteError, raised when
the failure itself cannot be recorded.
"""

from typing import Any, Awaitable, Optional, TypeVar, Union
from uuid import UUID

from pydantic import ValidationError

from ledger_ingest.audit import AuditLogger, create_correlation_id
from ledger_ingest.config import IngestionSettings, get_settings
from ledger_ingest.errors import (
    ConfigurationError,
    FetchError,
    IngestionError,
    StatusWriteError,
)
from ledger_ingest.ingestion.decoding import decode_content
from ledger_ingest.ingestion.materializer import DocumentMaterializer
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
from ledger_ingest.models.documents import FileStatus, RawFile, UserProfile
from ledger_ingest.models.extraction import SourceKind
from ledger_ingest.services.blob import BlobStoreInterface, user_blob_path
from ledger_ingest.services.extraction import (
    MISSING_API_KEY_MESSAGE,
    GeminiExtractionService,
)
from ledger_ingest.services.storage import (
    DocumentStoreInterface,
    NotFoundError,
    StorageError,
)


T = TypeVar("T")


class IngestionPipeline:
    """
    Processes raw files into statements, transactions, receipts and items.

    All collaborators are injected, so one pipeline instance holds no state
    shared between runs beyond them.
    """

    def __init__(
        self,
        document_store: DocumentStoreInterface,
        blob_store: BlobStoreInterface,
        extraction_service: GeminiExtractionService,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[IngestionSettings] = None,
    ):
        self._settings = settings or get_settings().ingestion
        self._store = document_store
        self._blobs = blob_store
        self._extraction = extraction_service
        self._audit = audit_logger or AuditLogger()
        self._materializer = DocumentMaterializer(
            document_store,
            atomic=self._settings.atomic_materialization,
        )

    async def process_by_id(
        self,
        user_id: str,
        file_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> IngestionOutcome:
        """
        Load a raw file record and process it.

        Raises:
            NotFoundError: If the raw file doesn't exist
        """
        data = await self._store.get(user_id, RawFile.collection, file_id)
        if data is None:
            raise NotFoundError(f"Raw file {file_id} not found for user {user_id}")
        return await self.process_document(user_id, file_id, data, correlation_id)

    async def process_document(
        self,
        user_id: str,
        file_id: str,
        data: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> IngestionOutcome:
        """
        Process a raw file from its stored document data.

        A record that doesn't parse as a RawFile is marked failed.
        """
        try:
            raw_file = RawFile.from_document(file_id, data)
        except ValidationError as e:
            outcome = IngestionOutcome(
                user_id=user_id,
                file_id=file_id,
                correlation_id=correlation_id or create_correlation_id(),
                status=FileStatus.PENDING,
            )
            return await self._fail(
                outcome,
                IngestionError(f"Invalid raw file record: {e.error_count()} field errors"),
            )
        return await self.process(user_id, file_id, raw_file, correlation_id)

    async def process(
        self,
        user_id: str,
        file_id: str,
        raw_file: RawFile,
        correlation_id: Optional[UUID] = None,
    ) -> IngestionOutcome:
        """
        Run the full pipeline for one raw file.

        Returns:
            What the run did; ``status`` is completed or failed

        Raises:
            StatusWriteError: If a failure could not be recorded on the raw file
        """
        correlation_id = correlation_id or create_correlation_id()
        outcome = IngestionOutcome(
            user_id=user_id,
            file_id=file_id,
            correlation_id=correlation_id,
            status=FileStatus.PENDING,
        )

        await self._audit.log_file_received(
            user_id, file_id, raw_file.filename, str(raw_file.file_type), correlation_id,
        )

        # 1. Mark processing
        marked = await self._stage(self._set_status(
            user_id, file_id, FileStatus.PROCESSING, correlation_id,
        ))
        if not marked.ok:
            return await self._fail(outcome, marked.error)
        outcome.status = FileStatus.PROCESSING

        # 2. Fetch
        fetched = await self._stage(self._fetch(user_id, file_id, raw_file, correlation_id))
        if not fetched.ok:
            return await self._fail(outcome, fetched.error)

        # 3. Decode
        decoded = self._decode(raw_file, fetched.value)
        if not decoded.ok:
            return await self._fail(outcome, decoded.error)

        # 4. Resolve key
        api_key = await self._stage(self._resolve_api_key(user_id))
        if not api_key.ok:
            return await self._fail(outcome, api_key.error)

        # 5. Run plan
        decision = plan_processing(raw_file)
        outcome.plan = decision.plan
        ran = await self._stage(self._run_plan(
            outcome, raw_file, decision, decoded.value, api_key.value,
        ))
        if not ran.ok:
            return await self._fail(outcome, ran.error)

        # 6. Mark completed
        completed = await self._stage(self._set_status(
            user_id, file_id, FileStatus.COMPLETED, correlation_id,
        ))
        if not completed.ok:
            return await self._fail(outcome, completed.error)
        outcome.status = FileStatus.COMPLETED
        return outcome

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def _stage(self, step: Awaitable[T]) -> StageResult[T]:
        """Await one stage, turning any exception into a failed StageResult."""
        try:
            return StageResult.success(await step)
        except IngestionError as e:
            return StageResult.failure(e)
        except Exception as e:
            return StageResult.failure(IngestionError(str(e) or type(e).__name__))

    async def _set_status(
        self,
        user_id: str,
        file_id: str,
        status: FileStatus,
        correlation_id: UUID,
    ) -> None:
        await self._store.update(
            user_id, RawFile.collection, file_id, {"status": status.value},
        )
        await self._audit.log_status_changed(user_id, file_id, status.value, correlation_id)

    async def _fetch(
        self,
        user_id: str,
        file_id: str,
        raw_file: RawFile,
        correlation_id: UUID,
    ) -> bytes:
        path = user_blob_path(user_id, raw_file.storage_path)
        try:
            data = await self._blobs.download(path)
        except Exception as e:  # any download failure is a fetch failure
            await self._audit.log_external_service_error(
                service="blob_store",
                error_message=str(e) or type(e).__name__,
                user_id=user_id,
                correlation_id=correlation_id,
            )
            raise FetchError(
                f"Failed to fetch {path}: {str(e) or type(e).__name__}",
                details={"path": path},
            )
        await self._audit.log_blob_fetched(user_id, file_id, path, len(data), correlation_id)
        return data

    def _decode(self, raw_file: RawFile, data: bytes) -> StageResult[Union[str, bytes]]:
        try:
            return StageResult.success(decode_content(raw_file.file_type, data))
        except ValueError as e:
            return StageResult.failure(IngestionError(f"Could not decode file: {e}"))

    async def _resolve_api_key(self, user_id: str) -> str:
        try:
            data = await self._store.get_user_profile(user_id)
        except StorageError as e:
            raise ConfigurationError(f"Could not read user profile: {e}")
        profile = UserProfile.model_validate(data or {})
        if not profile.has_api_key:
            raise ConfigurationError(MISSING_API_KEY_MESSAGE)
        return profile.gemini_api_key

    async def _run_plan(
        self,
        outcome: IngestionOutcome,
        raw_file: RawFile,
        decision: ProcessingDecision,
        content: Union[str, bytes],
        api_key: str,
    ) -> None:
        user_id = outcome.user_id
        file_id = outcome.file_id
        correlation_id = outcome.correlation_id

        if decision.plan == ProcessingPlan.SKIP:
            await self._audit.log_file_skipped(user_id, file_id, decision.reason, correlation_id)
            return

        source_kind = decision.source_kind
        await self._audit.log_extraction_started(
            user_id, file_id, source_kind.value, correlation_id,
        )
        extracted = await self._extraction.extract(
            content, source_kind, raw_file.file_type, api_key,
        )

        if source_kind == SourceKind.STATEMENT:
            await self._audit.log_extraction_completed(
                user_id, file_id, source_kind.value, len(extracted.transactions), correlation_id,
            )
            written = await self._materializer.materialize_statement(
                user_id, file_id, raw_file, extracted,
            )
            self._record_statement(outcome, written)
            await self._audit.log_statement_materialized(
                user_id, written.parent_id, file_id, len(written.child_ids), correlation_id,
            )
        else:
            await self._audit.log_extraction_completed(
                user_id, file_id, source_kind.value, len(extracted.items), correlation_id,
            )
            written = await self._materializer.materialize_receipt(
                user_id, file_id, raw_file, extracted,
            )
            self._record_receipt(outcome, written)
            await self._audit.log_receipt_materialized(
                user_id, written.parent_id, file_id, len(written.child_ids), correlation_id,
            )

    @staticmethod
    def _record_statement(outcome: IngestionOutcome, written: MaterializedDocuments) -> None:
        outcome.statement_id = written.parent_id
        outcome.transaction_ids = list(written.child_ids)

    @staticmethod
    def _record_receipt(outcome: IngestionOutcome, written: MaterializedDocuments) -> None:
        outcome.receipt_id = written.parent_id
        outcome.item_ids = list(written.child_ids)

    # -------------------------------------------------------------------------
    # Failure
    # -------------------------------------------------------------------------

    async def _fail(
        self,
        outcome: IngestionOutcome,
        error: IngestionError,
    ) -> IngestionOutcome:
        """
        Record ``error`` on the raw file and return the failed outcome.

        Raises:
            StatusWriteError: If the failed status could not be written
        """
        details = dict(error.details)
        parent_id = getattr(error, "parent_id", None)
        if parent_id:
            details["parent_id"] = parent_id

        await self._audit.log_processing_failed(
            outcome.user_id,
            outcome.file_id,
            error.kind,
            error.message,
            outcome.correlation_id,
            details or None,
        )

        try:
            await self._store.update(
                outcome.user_id,
                RawFile.collection,
                outcome.file_id,
                {"status": FileStatus.FAILED.value, "error_message": error.message},
            )
        except Exception as e:
            await self._audit.log_error(
                error_type=StatusWriteError.kind,
                error_message=str(e),
                user_id=outcome.user_id,
                details={"original_error": error.message, "original_kind": error.kind},
                correlation_id=outcome.correlation_id,
            )
            raise StatusWriteError(
                f"Could not mark raw file {outcome.file_id} as failed: {e}",
                details={"original_error": error.message, "original_kind": error.kind},
            ) from e

        await self._audit.log_status_changed(
            outcome.user_id, outcome.file_id, FileStatus.FAILED.value, outcome.correlation_id,
        )
        outcome.status = FileStatus.FAILED
        outcome.error_kind = error.kind
        outcome.error_message = error.message
        return outcome
