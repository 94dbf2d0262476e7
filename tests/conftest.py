"""
Shared fixtures.

No real API calls in tests: the document and blob stores are the
in-memory implementations, and the extraction service answers with
scripted model output.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import pytest

from ledger_ingest.audit import AuditLogger
from ledger_ingest.config import GeminiSettings, IngestionSettings
from ledger_ingest.ingestion import IngestionPipeline
from ledger_ingest.models import RawFile
from ledger_ingest.services.blob import InMemoryBlobStore, user_blob_path
from ledger_ingest.services.extraction import GeminiExtractionService
from ledger_ingest.services.storage import DocumentAuditStorage, InMemoryDocumentStore


USER_ID = "user-1"
API_KEY = "test-api-key"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class ScriptedExtractionService(GeminiExtractionService):
    """
    Extraction service whose model call returns queued responses.

    Everything around the call (key check, request building, schema
    validation) is the real implementation.
    """

    def __init__(self, max_text_chars: int = 50_000):
        super().__init__(
            settings=GeminiSettings(request_timeout_seconds=5, max_attempts=1),
            max_text_chars=max_text_chars,
        )
        self.responses: list[Union[str, Exception]] = []
        self.calls: list[dict] = []

    def respond_with(self, payload: Union[dict, str, Exception]) -> None:
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        self.responses.append(payload)

    async def _generate(self, api_key, request):
        self.calls.append({
            "api_key": api_key,
            "request": request,
            "parts": list(request.contents[0].parts),
        })
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


STATEMENT_PAYLOAD = {
    "period_start": "2024-01-01",
    "period_end": "2024-01-31",
    "opening_balance": 100,
    "closing_balance": 250,
    "transactions": [
        {"date": "2024-01-05", "amount": -50, "description": "Coffee"},
        {"date": "2024-01-20", "amount": 200, "description": "Paycheck"},
    ],
}

RECEIPT_PAYLOAD = {
    "date": "2024-02-01",
    "merchant": "Grocer",
    "total_amount": 45.30,
    "items": [{"description": "Milk", "total_price": 4.50}],
}


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store(clock):
    store = InMemoryDocumentStore(clock=clock)
    store.set_user_profile(USER_ID, {"geminiApiKey": API_KEY})
    return store


@pytest.fixture
def blobs():
    return InMemoryBlobStore()


@pytest.fixture
def extraction():
    return ScriptedExtractionService()


@pytest.fixture
def audit_storage(store):
    return DocumentAuditStorage(store)


@pytest.fixture
def ingestion_settings():
    return IngestionSettings(atomic_materialization=False, stale_processing_minutes=30)


@pytest.fixture
def pipeline(store, blobs, extraction, audit_storage, ingestion_settings):
    return IngestionPipeline(
        store,
        blobs,
        extraction,
        audit_logger=AuditLogger(audit_storage),
        settings=ingestion_settings,
    )


async def add_raw_file(
    store: InMemoryDocumentStore,
    blobs: InMemoryBlobStore,
    raw_file: RawFile,
    content: bytes = b"date,amount\n2024-01-05,-50\n",
    user_id: str = USER_ID,
) -> str:
    """Create a pending raw file document and upload its bytes."""
    file_id = await store.create(user_id, RawFile.collection, raw_file.to_document())
    await blobs.upload(user_blob_path(user_id, raw_file.storage_path), content)
    return file_id
