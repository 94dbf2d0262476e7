"""
Firestore Storage Implementation

DESIGN DECISION: Firestore is the production backend because the mobile
client already reads and writes it directly:
1. Per-user subcollections (``users/{uid}/...``) give natural scoping
2. Security rules on the client side key off that same layout
3. Write batches give us the all-or-nothing commit the pipeline needs

TRADEOFFS:
- Batches are write-only; we never need a read-write transaction
- A batch holds at most 500 writes, so larger batches are rejected up front

The implementation follows the abstract interface, so business logic never
imports the Firestore SDK.
"""

from typing import Any, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ledger_ingest.config import FirebaseSettings, get_settings
from ledger_ingest.models.documents import utcnow
from ledger_ingest.services.storage.interface import (
    BatchCommitError,
    BatchWrite,
    DocumentSnapshot,
    DocumentStoreInterface,
    NotFoundError,
    QueryFilter,
    StorageError,
    stamp_created,
    stamp_updated,
)


USERS_COLLECTION = "users"
MAX_BATCH_WRITES = 500

_TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)


def create_firestore_client(settings: Optional[FirebaseSettings] = None) -> firestore.AsyncClient:
    """
    Build an async Firestore client.

    Uses the service account file when configured, application default
    credentials otherwise.
    """
    settings = settings or get_settings().firebase
    credentials = None
    if settings.credentials_path:
        credentials = Credentials.from_service_account_file(settings.credentials_path)
    return firestore.AsyncClient(project=settings.project_id, credentials=credentials)


class FirestoreDocumentStore(DocumentStoreInterface):
    """
    Firestore implementation of the document store.

    Reads are retried on transient errors. Writes are not: a retried
    ``create`` could insert the same document twice.
    """

    def __init__(self, client: Optional[firestore.AsyncClient] = None):
        self._client = client or create_firestore_client()

    def _user(self, user_id: str) -> firestore.AsyncDocumentReference:
        return self._client.collection(USERS_COLLECTION).document(user_id)

    def _collection(self, user_id: str, collection: str) -> firestore.AsyncCollectionReference:
        return self._user(user_id).collection(collection)

    def new_id(self, user_id: str, collection: str) -> str:
        return self._collection(user_id, collection).document().id

    async def create(
        self,
        user_id: str,
        collection: str,
        data: dict[str, Any],
    ) -> str:
        try:
            _, ref = await self._collection(user_id, collection).add(
                stamp_created(data, utcnow())
            )
            return ref.id
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to create {collection} document: {e}")

    @retry(
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _get_snapshot(self, ref: firestore.AsyncDocumentReference):
        return await ref.get()

    async def get(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
    ) -> Optional[dict[str, Any]]:
        try:
            snapshot = await self._get_snapshot(
                self._collection(user_id, collection).document(doc_id)
            )
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to read {collection}/{doc_id}: {e}")
        return snapshot.to_dict() if snapshot.exists else None

    async def update(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
    ) -> None:
        ref = self._collection(user_id, collection).document(doc_id)
        try:
            await ref.update(stamp_updated(data, utcnow()))
        except google_exceptions.NotFound:
            raise NotFoundError(f"Document not found: {collection}/{doc_id}")
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to update {collection}/{doc_id}: {e}")

    async def delete(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
    ) -> None:
        try:
            await self._collection(user_id, collection).document(doc_id).delete()
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to delete {collection}/{doc_id}: {e}")

    async def query(
        self,
        user_id: str,
        collection: str,
        filters: Optional[list[QueryFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        query = self._collection(user_id, collection)
        for condition in filters or []:
            query = query.where(filter=FieldFilter(condition.field, condition.op, condition.value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)

        try:
            return [
                DocumentSnapshot(id=snapshot.id, data=snapshot.to_dict())
                async for snapshot in query.stream()
            ]
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to query {collection}: {e}")

    async def commit_batch(
        self,
        user_id: str,
        writes: list[BatchWrite],
    ) -> None:
        if not writes:
            return
        if len(writes) > MAX_BATCH_WRITES:
            raise BatchCommitError(
                f"Batch of {len(writes)} writes exceeds the Firestore limit of {MAX_BATCH_WRITES}"
            )

        now = utcnow()
        batch = self._client.batch()
        for write in writes:
            ref = self._collection(user_id, write.collection).document(write.doc_id)
            batch.set(ref, stamp_created(write.data, now))

        try:
            await batch.commit()
        except google_exceptions.GoogleAPICallError as e:
            raise BatchCommitError(f"Batch commit of {len(writes)} writes failed: {e}")

    async def get_user_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        try:
            snapshot = await self._get_snapshot(self._user(user_id))
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to read user profile {user_id}: {e}")
        return snapshot.to_dict() if snapshot.exists else None
