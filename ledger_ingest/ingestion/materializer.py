"""
Materialization

Turns a validated extraction result into stored documents:
- statement -> one Statement + one Transaction per extracted line
- receipt   -> one Receipt + one Item per extracted line

All documents are built before anything is written, so a bad value never
leaves half a statement behind.

Two write modes:

DEFAULT: the parent is inserted first, then all children go in one atomic
batch. If the batch fails the parent stays behind with no children; the
resulting MaterializationError carries its id.

ATOMIC (``atomic=True``): parent and children are committed together in a
single batch with pre-allocated ids, so a failure leaves nothing behind.
"""

from typing import Optional

from ledger_ingest.errors import MaterializationError
from ledger_ingest.ingestion.results import MaterializedDocuments
from ledger_ingest.models.documents import (
    Item,
    RawFile,
    Receipt,
    Statement,
    StoredDocument,
    Transaction,
)
from ledger_ingest.models.extraction import (
    ExtractedReceipt,
    ExtractedStatement,
    parse_iso_datetime,
)
from ledger_ingest.services.storage import (
    BatchWrite,
    DocumentStoreInterface,
    StorageError,
)


# =============================================================================
# BUILDERS - pure, no I/O
# =============================================================================

def build_statement(
    extracted: ExtractedStatement,
    account_id: str,
    raw_file_id: str,
) -> Statement:
    return Statement(
        account_id=account_id,
        raw_file_id=raw_file_id,
        period_start=parse_iso_datetime(extracted.period_start),
        period_end=parse_iso_datetime(extracted.period_end),
        opening_balance=extracted.opening_balance,
        closing_balance=extracted.closing_balance,
        is_validated=False,
        validation_errors=[],
    )


def build_transactions(
    extracted: ExtractedStatement,
    account_id: str,
    statement_id: Optional[str] = None,
) -> list[Transaction]:
    """One transaction per extracted line; amounts keep their sign."""
    return [
        Transaction(
            account_id=account_id,
            statement_id=statement_id,
            date=parse_iso_datetime(entry.date),
            amount=entry.amount,
            description=entry.description,
            merchant=entry.merchant or None,
            category_id=None,
            receipt_id=None,
            is_reconciled=False,
        )
        for entry in extracted.transactions
    ]


def build_receipt(
    extracted: ExtractedReceipt,
    raw_file_id: str,
    storage_path: str,
) -> Receipt:
    return Receipt(
        raw_file_id=raw_file_id,
        transaction_id=None,
        date=parse_iso_datetime(extracted.date),
        merchant=extracted.merchant,
        total_amount=extracted.total_amount,
        tax_amount=extracted.tax_amount or 0,
        items=[],
        storage_path=storage_path,
    )


def build_items(
    extracted: ExtractedReceipt,
    receipt_id: str = "",
) -> list[Item]:
    """
    One item per extracted line.

    Missing quantity means 1; missing unit price means single-unit pricing,
    so the line total is used.
    """
    return [
        Item(
            receipt_id=receipt_id,
            description=entry.description,
            quantity=entry.quantity or 1,
            unit_price=entry.unit_price or entry.total_price,
            total_price=entry.total_price,
            category_id=None,
        )
        for entry in extracted.items
    ]


# =============================================================================
# WRITER
# =============================================================================

class DocumentMaterializer:
    """Writes built documents to the store, in default or atomic mode."""

    def __init__(self, store: DocumentStoreInterface, atomic: bool = False):
        self._store = store
        self._atomic = atomic

    @property
    def atomic(self) -> bool:
        return self._atomic

    async def materialize_statement(
        self,
        user_id: str,
        file_id: str,
        raw_file: RawFile,
        extracted: ExtractedStatement,
    ) -> MaterializedDocuments:
        if not raw_file.account_id:
            raise MaterializationError("Statement materialization needs an account_id")
        try:
            statement = build_statement(extracted, raw_file.account_id, file_id)
            transactions = build_transactions(extracted, raw_file.account_id)
        except ValueError as e:
            raise MaterializationError(f"Invalid statement data: {e}")
        return await self._persist(user_id, statement, transactions, "statement_id")

    async def materialize_receipt(
        self,
        user_id: str,
        file_id: str,
        raw_file: RawFile,
        extracted: ExtractedReceipt,
    ) -> MaterializedDocuments:
        try:
            receipt = build_receipt(extracted, file_id, raw_file.storage_path)
            items = build_items(extracted)
        except ValueError as e:
            raise MaterializationError(f"Invalid receipt data: {e}")
        return await self._persist(user_id, receipt, items, "receipt_id")

    def _child_writes(
        self,
        user_id: str,
        children: list[StoredDocument],
        link_field: str,
        parent_id: str,
    ) -> list[BatchWrite]:
        return [
            BatchWrite(
                collection=child.collection,
                doc_id=self._store.new_id(user_id, child.collection),
                data=child.model_copy(update={link_field: parent_id}).to_document(),
            )
            for child in children
        ]

    async def _persist(
        self,
        user_id: str,
        parent: StoredDocument,
        children: list[StoredDocument],
        link_field: str,
    ) -> MaterializedDocuments:
        kind = type(parent).__name__.lower()

        if self._atomic:
            parent_id = self._store.new_id(user_id, parent.collection)
            parent_write = BatchWrite(
                collection=parent.collection,
                doc_id=parent_id,
                data=parent.to_document(),
            )
            child_writes = self._child_writes(user_id, children, link_field, parent_id)
            try:
                await self._store.commit_batch(user_id, [parent_write, *child_writes])
            except StorageError as e:
                raise MaterializationError(
                    f"Failed to save {kind} with {len(children)} lines: {e}"
                )
            return MaterializedDocuments(
                parent_id=parent_id,
                child_ids=[w.doc_id for w in child_writes],
            )

        try:
            parent_id = await self._store.create(user_id, parent.collection, parent.to_document())
        except StorageError as e:
            raise MaterializationError(f"Failed to save {kind}: {e}")

        child_writes = self._child_writes(user_id, children, link_field, parent_id)
        try:
            await self._store.commit_batch(user_id, child_writes)
        except StorageError as e:
            raise MaterializationError(
                f"Saved {kind} {parent_id} but its {len(children)} lines failed to commit: {e}",
                parent_id=parent_id,
                details={"orphaned_collection": parent.collection},
            )
        return MaterializedDocuments(
            parent_id=parent_id,
            child_ids=[w.doc_id for w in child_writes],
        )
