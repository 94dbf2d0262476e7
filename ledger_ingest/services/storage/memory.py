"""
In-Memory Storage Implementation

A dict-backed document store with the same semantics as the Firestore
implementation: generated ids, metadata stamping, dotted-path updates and
all-or-nothing batches. Used by the test-suite and for local runs.

Failures can be injected per operation so the pipeline's failure paths
can be exercised without a real backend.
"""

import copy
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

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


_MISSING = object()


def _get_path(data: dict[str, Any], path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _set_path(data: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        nested = current.get(part)
        if not isinstance(nested, dict):
            nested = {}
            current[part] = nested
        current = nested
    current[parts[-1]] = value


def _matches(data: dict[str, Any], condition: QueryFilter) -> bool:
    value = _get_path(data, condition.field)
    if value is _MISSING:
        return False
    if condition.op == "==":
        return value == condition.value
    if condition.op == "!=":
        return value != condition.value
    if condition.op == "in":
        return value in condition.value
    if value is None or condition.value is None:
        return False
    if condition.op == "<":
        return value < condition.value
    if condition.op == "<=":
        return value <= condition.value
    if condition.op == ">":
        return value > condition.value
    return value >= condition.value


class _InjectedFailure:
    def __init__(
        self,
        operation: str,
        collection: Optional[str],
        match: Optional[dict[str, Any]],
        times: Optional[int],
    ):
        self.operation = operation
        self.collection = collection
        self.match = match or {}
        self.remaining = times

    def applies(self, operation: str, collection: str, data: dict[str, Any]) -> bool:
        if operation != self.operation:
            return False
        if self.collection is not None and collection != self.collection:
            return False
        if any(data.get(k, _MISSING) != v for k, v in self.match.items()):
            return False
        return self.remaining is None or self.remaining > 0


class InMemoryDocumentStore(DocumentStoreInterface):
    """
    Dict-backed document store.

    Documents are deep-copied on the way in and out so callers can never
    mutate stored state by accident.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._collections: dict[tuple[str, str], dict[str, dict[str, Any]]] = {}
        self._profiles: dict[str, dict[str, Any]] = {}
        self._failures: list[_InjectedFailure] = []

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def set_user_profile(self, user_id: str, data: dict[str, Any]) -> None:
        """Create or replace the ``users/{user_id}`` document."""
        self._profiles[user_id] = copy.deepcopy(data)

    def documents(self, user_id: str, collection: str) -> dict[str, dict[str, Any]]:
        """Snapshot of a whole collection, keyed by document id."""
        return copy.deepcopy(self._collections.get((user_id, collection), {}))

    def count(self, user_id: str, collection: str) -> int:
        return len(self._collections.get((user_id, collection), {}))

    def inject_failure(
        self,
        operation: str,
        collection: Optional[str] = None,
        match: Optional[dict[str, Any]] = None,
        times: Optional[int] = None,
    ) -> None:
        """
        Make matching operations raise.

        Args:
            operation: 'create', 'update', 'commit_batch' or 'get_user_profile'
            collection: Only fail for this collection (any write in a batch)
            match: Only fail when the payload contains all these key/values
            times: Fail this many times, or forever when None
        """
        self._failures.append(_InjectedFailure(operation, collection, match, times))

    def _check_failure(self, operation: str, collection: str, data: dict[str, Any]) -> None:
        for failure in self._failures:
            if failure.applies(operation, collection, data):
                if failure.remaining is not None:
                    failure.remaining -= 1
                error_type = BatchCommitError if operation == "commit_batch" else StorageError
                raise error_type(f"Injected {operation} failure on {collection}")

    def _collection(self, user_id: str, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault((user_id, collection), {})

    # -------------------------------------------------------------------------
    # DocumentStoreInterface
    # -------------------------------------------------------------------------

    def new_id(self, user_id: str, collection: str) -> str:
        return uuid.uuid4().hex[:20]

    async def create(
        self,
        user_id: str,
        collection: str,
        data: dict[str, Any],
    ) -> str:
        self._check_failure("create", collection, data)
        doc_id = self.new_id(user_id, collection)
        self._collection(user_id, collection)[doc_id] = copy.deepcopy(
            stamp_created(data, self._clock())
        )
        return doc_id

    async def get(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
    ) -> Optional[dict[str, Any]]:
        document = self._collections.get((user_id, collection), {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def update(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
    ) -> None:
        self._check_failure("update", collection, data)
        documents = self._collection(user_id, collection)
        if doc_id not in documents:
            raise NotFoundError(f"Document not found: {collection}/{doc_id}")
        document = documents[doc_id]
        for path, value in stamp_updated(data, self._clock()).items():
            _set_path(document, path, copy.deepcopy(value))

    async def delete(
        self,
        user_id: str,
        collection: str,
        doc_id: str,
    ) -> None:
        self._collection(user_id, collection).pop(doc_id, None)

    async def query(
        self,
        user_id: str,
        collection: str,
        filters: Optional[list[QueryFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        results = [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get((user_id, collection), {}).items()
            if all(_matches(data, condition) for condition in filters or [])
        ]
        if order_by:
            # Documents lacking the field are excluded, as in Firestore
            results = [r for r in results if _get_path(r.data, order_by) is not _MISSING]
            results.sort(key=lambda r: _get_path(r.data, order_by), reverse=descending)
        if limit is not None:
            results = results[:limit]
        return results

    async def commit_batch(
        self,
        user_id: str,
        writes: list[BatchWrite],
    ) -> None:
        for write in writes:
            self._check_failure("commit_batch", write.collection, write.data)
        now = self._clock()
        staged = [
            (write.collection, write.doc_id, copy.deepcopy(stamp_created(write.data, now)))
            for write in writes
        ]
        # Nothing above touched stored state, so a failure leaves no trace
        for collection, doc_id, data in staged:
            self._collection(user_id, collection)[doc_id] = data

    async def get_user_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        self._check_failure("get_user_profile", "users", {})
        profile = self._profiles.get(user_id)
        return copy.deepcopy(profile) if profile is not None else None
