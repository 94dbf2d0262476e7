"""
Tests for the ingestion pipeline.

End-to-end runs against the in-memory stores with scripted model output.
"""

import asyncio

import pytest
from google.api_core import exceptions as google_exceptions

from conftest import (
    API_KEY,
    RECEIPT_PAYLOAD,
    STATEMENT_PAYLOAD,
    USER_ID,
    add_raw_file,
)
from ledger_ingest.audit import AuditLogger
from ledger_ingest.config import IngestionSettings
from ledger_ingest.errors import StatusWriteError
from ledger_ingest.ingestion import IngestionPipeline, ProcessingPlan
from ledger_ingest.models import (
    FileStatus,
    FileType,
    Item,
    RawFile,
    Receipt,
    Statement,
    Transaction,
)
from ledger_ingest.models.audit import AuditEventType
from ledger_ingest.services.blob import user_blob_path
from ledger_ingest.services.storage import NotFoundError


def statement_csv() -> RawFile:
    return RawFile.for_upload(
        filename="jan.csv",
        file_type=FileType.CSV,
        storage_path="statements/acc1/1704067200000_jan.csv",
        account_id="acc1",
    )


def receipt_image() -> RawFile:
    return RawFile.for_upload(
        filename="grocer.png",
        file_type=FileType.IMAGE,
        storage_path="receipts/1706745600000_grocer.png",
    )


def run(pipeline, store, blobs, raw_file, content=b"a,b\n1,2\n"):
    """Create the raw file and process it; returns (file_id, outcome)."""
    async def go():
        file_id = await add_raw_file(store, blobs, raw_file, content)
        outcome = await pipeline.process_by_id(USER_ID, file_id)
        return file_id, outcome
    return asyncio.run(go())


def raw_file_doc(store, file_id):
    return store.documents(USER_ID, RawFile.collection)[file_id]


def derived_counts(store):
    return {
        collection: store.count(USER_ID, collection)
        for collection in (
            Statement.collection,
            Transaction.collection,
            Receipt.collection,
            Item.collection,
        )
    }


class TestStatementIngestion:
    """CSV/PDF uploads with a target account become statements."""

    def test_csv_statement_is_materialized(self, pipeline, store, blobs, extraction):
        """Test a two-line statement yields one Statement and two Transactions."""
        extraction.respond_with(STATEMENT_PAYLOAD)

        file_id, outcome = run(pipeline, store, blobs, statement_csv())

        assert outcome.status == FileStatus.COMPLETED
        assert outcome.plan == ProcessingPlan.STATEMENT
        assert raw_file_doc(store, file_id)["status"] == "completed"

        statements = store.documents(USER_ID, Statement.collection)
        assert list(statements) == [outcome.statement_id]
        statement = Statement.from_document(outcome.statement_id, statements[outcome.statement_id])
        assert statement.account_id == "acc1"
        assert statement.raw_file_id == file_id
        assert statement.opening_balance == 100
        assert statement.closing_balance == 250
        assert statement.is_validated is False
        assert statement.validation_errors == []

        transactions = store.documents(USER_ID, Transaction.collection)
        assert sorted(transactions) == sorted(outcome.transaction_ids)
        by_description = {t["description"]: t for t in transactions.values()}
        assert by_description["Coffee"]["amount"] == -50
        assert by_description["Paycheck"]["amount"] == 200
        assert by_description["Coffee"]["date"].day == 5
        for transaction in transactions.values():
            assert transaction["statement_id"] == outcome.statement_id
            assert transaction["account_id"] == "acc1"
            assert transaction["is_reconciled"] is False
            assert transaction["category_id"] is None

    def test_transaction_count_matches_extraction(self, pipeline, store, blobs, extraction):
        """Test N extracted lines produce exactly N transactions."""
        payload = dict(STATEMENT_PAYLOAD)
        payload["transactions"] = [
            {"date": f"2024-01-{day:02d}", "amount": day * -1.25, "description": f"Line {day}"}
            for day in range(1, 13)
        ]
        extraction.respond_with(payload)

        _, outcome = run(pipeline, store, blobs, statement_csv())

        assert len(outcome.transaction_ids) == 12
        assert store.count(USER_ID, Transaction.collection) == 12
        assert store.count(USER_ID, Statement.collection) == 1

    def test_pdf_is_sent_inline(self, pipeline, store, blobs, extraction):
        """Test PDF bytes reach the model as inline application/pdf data."""
        extraction.respond_with(STATEMENT_PAYLOAD)
        raw_file = RawFile.for_upload(
            filename="jan.pdf",
            file_type=FileType.PDF,
            storage_path="statements/acc1/1_jan.pdf",
            account_id="acc1",
        )
        pdf_bytes = b"%PDF-1.7 fake statement"

        _, outcome = run(pipeline, store, blobs, raw_file, pdf_bytes)

        assert outcome.succeeded
        part = extraction.calls[0]["parts"][1]
        assert part.inline_data.mime_type == "application/pdf"
        assert part.inline_data.data == pdf_bytes

    def test_user_api_key_is_used(self, pipeline, store, blobs, extraction):
        """Test the key from the user's profile is passed to the model call."""
        extraction.respond_with(STATEMENT_PAYLOAD)
        run(pipeline, store, blobs, statement_csv())
        assert extraction.calls[0]["api_key"] == API_KEY

    def test_reprocessing_duplicates_documents(self, pipeline, store, blobs, extraction):
        """Test processing the same raw file twice creates a second statement."""
        extraction.respond_with(STATEMENT_PAYLOAD)
        extraction.respond_with(STATEMENT_PAYLOAD)

        file_id, first = run(pipeline, store, blobs, statement_csv())
        second = asyncio.run(pipeline.process_by_id(USER_ID, file_id))

        assert first.statement_id != second.statement_id
        assert store.count(USER_ID, Statement.collection) == 2
        assert store.count(USER_ID, Transaction.collection) == 4


class TestReceiptIngestion:
    """Image uploads become receipts."""

    def test_image_receipt_is_materialized(self, pipeline, store, blobs, extraction):
        """Test a one-item receipt with unit price falling back to the total."""
        extraction.respond_with(RECEIPT_PAYLOAD)
        png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16

        file_id, outcome = run(pipeline, store, blobs, receipt_image(), png)

        assert outcome.status == FileStatus.COMPLETED
        assert outcome.plan == ProcessingPlan.RECEIPT

        receipts = store.documents(USER_ID, Receipt.collection)
        receipt = receipts[outcome.receipt_id]
        assert receipt["merchant"] == "Grocer"
        assert receipt["total_amount"] == 45.30
        assert receipt["tax_amount"] == 0
        assert receipt["items"] == []
        assert receipt["transaction_id"] is None
        assert receipt["raw_file_id"] == file_id
        assert receipt["storage_path"] == "receipts/1706745600000_grocer.png"

        items = store.documents(USER_ID, Item.collection)
        assert list(items) == outcome.item_ids
        item = items[outcome.item_ids[0]]
        assert item["receipt_id"] == outcome.receipt_id
        assert item["quantity"] == 1
        assert item["unit_price"] == 4.50
        assert item["total_price"] == 4.50
        assert item["category_id"] is None

    def test_image_sent_as_inline_bytes(self, pipeline, store, blobs, extraction):
        """Test image bytes are passed through with a sniffed MIME type."""
        extraction.respond_with(RECEIPT_PAYLOAD)
        png = b"\x89PNG\r\n\x1a\n" + b"\xff\xfe" * 8

        run(pipeline, store, blobs, receipt_image(), png)

        part = extraction.calls[0]["parts"][1]
        assert part.inline_data.mime_type == "image/png"
        assert part.inline_data.data == png

    def test_item_count_matches_extraction(self, pipeline, store, blobs, extraction):
        """Test M extracted items produce exactly M item documents."""
        payload = dict(RECEIPT_PAYLOAD)
        payload["items"] = [
            {"description": "Bread", "quantity": 2, "unit_price": 1.5, "total_price": 3.0},
            {"description": "Eggs", "total_price": 4.0},
            {"description": "Tea", "quantity": 1, "total_price": 2.5},
        ]
        extraction.respond_with(payload)

        _, outcome = run(pipeline, store, blobs, receipt_image(), b"\xff\xd8\xff\xe0")

        items = store.documents(USER_ID, Item.collection)
        assert len(items) == 3
        bread = next(i for i in items.values() if i["description"] == "Bread")
        assert bread["quantity"] == 2
        assert bread["unit_price"] == 1.5


class TestSkippedFiles:
    """Files with no extraction target complete without derived documents."""

    def test_pdf_without_account_is_skipped(self, pipeline, store, blobs, extraction):
        """Test a PDF with no account completes with zero derived documents."""
        raw_file = RawFile.for_upload(
            filename="mystery.pdf",
            file_type=FileType.PDF,
            storage_path="statements/none/1_mystery.pdf",
        )

        file_id, outcome = run(pipeline, store, blobs, raw_file, b"%PDF")

        assert outcome.status == FileStatus.COMPLETED
        assert outcome.plan == ProcessingPlan.SKIP
        assert raw_file_doc(store, file_id)["status"] == "completed"
        assert extraction.calls == []
        assert all(count == 0 for count in derived_counts(store).values())

    def test_email_is_skipped(self, pipeline, store, blobs, extraction):
        """Test email uploads are never extracted."""
        raw_file = RawFile.for_upload(
            filename="note.eml",
            file_type=FileType.EMAIL,
            storage_path="mail/1_note.eml",
        )

        _, outcome = run(pipeline, store, blobs, raw_file, b"Subject: hi")

        assert outcome.plan == ProcessingPlan.SKIP
        assert outcome.succeeded
        assert extraction.calls == []


class TestPipelineFailures:
    """Every failure ends in the failed status with a message."""

    def test_missing_api_key(self, pipeline, store, blobs, extraction):
        """Test a user without a key ends failed and nothing is written."""
        store.set_user_profile(USER_ID, {})

        file_id, outcome = run(pipeline, store, blobs, statement_csv())

        doc = raw_file_doc(store, file_id)
        assert doc["status"] == "failed"
        assert "Gemini API key not found" in doc["error_message"]
        assert outcome.error_kind == "configuration_error"
        assert extraction.calls == []
        assert all(count == 0 for count in derived_counts(store).values())

    def test_missing_profile_document(self, pipeline, store, blobs):
        """Test a user with no profile document at all is a missing key."""
        other_user = "user-without-profile"

        async def go():
            file_id = await add_raw_file(store, blobs, statement_csv(), user_id=other_user)
            return file_id, await pipeline.process_by_id(other_user, file_id)

        file_id, outcome = asyncio.run(go())

        assert outcome.status == FileStatus.FAILED
        assert outcome.error_kind == "configuration_error"

    def test_schema_failure_writes_nothing(self, pipeline, store, blobs, extraction):
        """Test model output missing period_start fails without a partial statement."""
        payload = dict(STATEMENT_PAYLOAD)
        del payload["period_start"]
        extraction.respond_with(payload)

        file_id, outcome = run(pipeline, store, blobs, statement_csv())

        doc = raw_file_doc(store, file_id)
        assert doc["status"] == "failed"
        assert "schema validation" in doc["error_message"]
        assert outcome.error_kind == "extraction_error"
        assert store.count(USER_ID, Statement.collection) == 0
        assert store.count(USER_ID, Transaction.collection) == 0

    def test_model_returns_invalid_json(self, pipeline, store, blobs, extraction):
        """Test non-JSON model output fails the file."""
        extraction.respond_with("I could not read this statement.")

        _, outcome = run(pipeline, store, blobs, statement_csv())

        assert outcome.status == FileStatus.FAILED
        assert outcome.error_kind == "extraction_error"

    def test_api_error_fails_file(self, pipeline, store, blobs, extraction):
        """Test a Gemini API error is recorded as an extraction failure."""
        extraction.respond_with(google_exceptions.PermissionDenied("API key not valid"))

        file_id, outcome = run(pipeline, store, blobs, statement_csv())

        assert outcome.error_kind == "extraction_error"
        assert "API key not valid" in raw_file_doc(store, file_id)["error_message"]

    def test_period_end_before_start(self, pipeline, store, blobs, extraction):
        """Test an inverted statement period writes nothing."""
        payload = dict(STATEMENT_PAYLOAD, period_start="2024-02-01", period_end="2024-01-01")
        extraction.respond_with(payload)

        _, outcome = run(pipeline, store, blobs, statement_csv())

        assert outcome.status == FileStatus.FAILED
        assert outcome.error_kind == "materialization_error"
        assert "period end cannot be before start" in outcome.error_message
        assert store.count(USER_ID, Statement.collection) == 0

    def test_fetch_failure(self, pipeline, store, blobs, extraction):
        """Test an unreadable blob fails the file with a fetch error."""
        raw_file = statement_csv()
        blobs.failing_paths.add(user_blob_path(USER_ID, raw_file.storage_path))

        file_id, outcome = run(pipeline, store, blobs, raw_file)

        doc = raw_file_doc(store, file_id)
        assert doc["status"] == "failed"
        assert doc["error_message"].startswith("Failed to fetch users/user-1/statements/")
        assert outcome.error_kind == "fetch_error"
        assert extraction.calls == []

    def test_download_transport_error_is_fetch_error(
        self, pipeline, store, blobs, extraction, monkeypatch,
    ):
        """Test a connection error outside the blob store's errors is still a fetch failure."""
        async def dropped(path):
            raise ConnectionResetError("connection reset by peer")

        monkeypatch.setattr(blobs, "download", dropped)

        file_id, outcome = run(pipeline, store, blobs, statement_csv())

        assert outcome.error_kind == "fetch_error"
        assert raw_file_doc(store, file_id)["error_message"].endswith("connection reset by peer")
        assert extraction.calls == []

    def test_extraction_transport_error(self, pipeline, store, blobs, extraction):
        extraction.respond_with(OSError("network unreachable"))

        file_id, outcome = run(pipeline, store, blobs, statement_csv())

        assert outcome.error_kind == "extraction_error"
        assert raw_file_doc(store, file_id)["status"] == "failed"

    def test_very_long_filename_reaches_terminal_status(self, pipeline, store, blobs, extraction):
        """Test an oversized filename cannot break audit logging and strand the file."""
        extraction.respond_with(STATEMENT_PAYLOAD)
        raw_file = RawFile.for_upload(
            filename="statement-" + "x" * 600 + ".csv",
            file_type=FileType.CSV,
            storage_path="statements/acc1/1_long.csv",
            account_id="acc1",
        )

        file_id, outcome = run(pipeline, store, blobs, raw_file)

        assert outcome.status == FileStatus.COMPLETED
        assert raw_file_doc(store, file_id)["status"] == "completed"

    def test_missing_blob(self, pipeline, store, blobs):
        """Test a raw file whose bytes were never uploaded fails to fetch."""
        async def go():
            file_id = await store.create(
                USER_ID, RawFile.collection, statement_csv().to_document(),
            )
            return await pipeline.process_by_id(USER_ID, file_id)

        outcome = asyncio.run(go())

        assert outcome.error_kind == "fetch_error"

    def test_child_batch_failure_orphans_statement(self, pipeline, store, blobs, extraction):
        """Test a failed transaction batch leaves the statement behind."""
        extraction.respond_with(STATEMENT_PAYLOAD)
        store.inject_failure("commit_batch", collection=Transaction.collection)

        file_id, outcome = run(pipeline, store, blobs, statement_csv())

        assert outcome.status == FileStatus.FAILED
        assert outcome.error_kind == "materialization_error"
        assert raw_file_doc(store, file_id)["status"] == "failed"
        assert store.count(USER_ID, Statement.collection) == 1
        assert store.count(USER_ID, Transaction.collection) == 0

    def test_atomic_mode_leaves_nothing_on_batch_failure(
        self, store, blobs, extraction, audit_storage,
    ):
        """Test atomic materialization closes the orphan window."""
        pipeline = IngestionPipeline(
            store,
            blobs,
            extraction,
            audit_logger=AuditLogger(audit_storage),
            settings=IngestionSettings(atomic_materialization=True),
        )
        extraction.respond_with(STATEMENT_PAYLOAD)
        store.inject_failure("commit_batch", collection=Transaction.collection)

        _, outcome = run(pipeline, store, blobs, statement_csv())

        assert outcome.error_kind == "materialization_error"
        assert store.count(USER_ID, Statement.collection) == 0
        assert store.count(USER_ID, Transaction.collection) == 0

    def test_atomic_mode_success(self, store, blobs, extraction):
        """Test atomic materialization links children to the pre-allocated parent id."""
        pipeline = IngestionPipeline(
            store,
            blobs,
            extraction,
            settings=IngestionSettings(atomic_materialization=True),
        )
        extraction.respond_with(STATEMENT_PAYLOAD)

        _, outcome = run(pipeline, store, blobs, statement_csv())

        assert outcome.succeeded
        statements = store.documents(USER_ID, Statement.collection)
        assert list(statements) == [outcome.statement_id]
        for transaction in store.documents(USER_ID, Transaction.collection).values():
            assert transaction["statement_id"] == outcome.statement_id

    def test_failed_status_write_raises(self, pipeline, store, blobs, extraction):
        """Test a failure that cannot be recorded escapes as StatusWriteError."""
        store.set_user_profile(USER_ID, {})
        store.inject_failure("update", collection=RawFile.collection, match={"status": "failed"})

        async def go():
            file_id = await add_raw_file(store, blobs, statement_csv())
            await pipeline.process_by_id(USER_ID, file_id)

        with pytest.raises(StatusWriteError) as exc_info:
            asyncio.run(go())

        assert exc_info.value.details["original_kind"] == "configuration_error"

    def test_processing_mark_failure_is_recorded(self, pipeline, store, blobs, extraction):
        """Test a failure to mark processing still records the failed status."""
        store.inject_failure(
            "update", collection=RawFile.collection, match={"status": "processing"},
        )

        file_id, outcome = run(pipeline, store, blobs, statement_csv())

        assert outcome.status == FileStatus.FAILED
        assert raw_file_doc(store, file_id)["status"] == "failed"
        assert extraction.calls == []

    def test_unknown_raw_file(self, pipeline):
        """Test processing a missing raw file raises NotFoundError."""
        with pytest.raises(NotFoundError):
            asyncio.run(pipeline.process_by_id(USER_ID, "does-not-exist"))

    def test_invalid_raw_file_record(self, pipeline, store):
        """Test a raw file document missing required fields is marked failed."""
        async def go():
            file_id = await store.create(USER_ID, RawFile.collection, {"filename": "x.csv"})
            return file_id, await pipeline.process_by_id(USER_ID, file_id)

        file_id, outcome = asyncio.run(go())

        assert outcome.status == FileStatus.FAILED
        assert raw_file_doc(store, file_id)["error_message"].startswith("Invalid raw file record")


class TestPipelineAudit:
    """Every run leaves a correlated audit trail."""

    def test_events_share_correlation_id(self, pipeline, store, blobs, extraction, audit_storage):
        """Test all events of one run can be fetched by its correlation id."""
        extraction.respond_with(STATEMENT_PAYLOAD)

        _, outcome = run(pipeline, store, blobs, statement_csv())
        events = asyncio.run(
            audit_storage.get_events_by_correlation_id(USER_ID, outcome.correlation_id)
        )

        types = [e.event_type for e in events]
        assert types[0] == AuditEventType.FILE_RECEIVED
        assert AuditEventType.BLOB_FETCHED in types
        assert AuditEventType.EXTRACTION_STARTED in types
        assert AuditEventType.STATEMENT_MATERIALIZED in types
        assert types.count(AuditEventType.STATUS_CHANGED) == 2

    def test_failure_event_recorded(self, pipeline, store, blobs, extraction, audit_storage):
        """Test a schema failure produces an extraction_failed event."""
        extraction.respond_with({"period_start": "2024-01-01"})

        _, outcome = run(pipeline, store, blobs, statement_csv())
        events = asyncio.run(
            audit_storage.get_events_by_correlation_id(USER_ID, outcome.correlation_id)
        )

        failed = [e for e in events if e.event_type == AuditEventType.EXTRACTION_FAILED]
        assert len(failed) == 1
        assert failed[0].error_code == "extraction_error"

    def test_orphan_recorded_in_audit(self, pipeline, store, blobs, extraction, audit_storage):
        """Test the orphaned statement id is kept in the failure event."""
        extraction.respond_with(STATEMENT_PAYLOAD)
        store.inject_failure("commit_batch", collection=Transaction.collection)

        _, outcome = run(pipeline, store, blobs, statement_csv())
        events = asyncio.run(
            audit_storage.get_events_by_correlation_id(USER_ID, outcome.correlation_id)
        )

        failed = next(e for e in events if e.event_type == AuditEventType.MATERIALIZATION_FAILED)
        orphan_id = next(iter(store.documents(USER_ID, Statement.collection)))
        assert failed.details["parent_id"] == orphan_id
