"""
Category Seeder

Creates the default category tree for a user in two passes:
1. Insert every category with no parent, remembering name -> id
2. Point each child at its parent's id

Not idempotent: seeding the same user twice creates a second tree.
Callers run it once, when the user is created.
"""

from typing import Optional

import structlog

from ledger_ingest.audit import AuditLogger
from ledger_ingest.categories.defaults import DEFAULT_CATEGORIES, DefaultCategory
from ledger_ingest.models.documents import Category
from ledger_ingest.services.storage import DocumentStoreInterface


logger = structlog.get_logger(__name__)


class CategorySeeder:
    """Seeds the default category tree into a user's categories collection."""

    def __init__(
        self,
        document_store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        categories: tuple[DefaultCategory, ...] = DEFAULT_CATEGORIES,
    ):
        self._store = document_store
        self._audit = audit_logger or AuditLogger()
        self._categories = categories

    async def seed(self, user_id: str) -> dict[str, str]:
        """
        Seed all default categories for ``user_id``.

        Returns:
            Mapping of category name to created document id

        Raises:
            StorageError: If any write fails; categories written before the
                failure are left in place
        """
        ids: dict[str, str] = {}

        for default in self._categories:
            category = Category(
                name=default.name,
                parent_id=None,
                type=default.type,
                sort_order=default.sort_order,
            )
            ids[default.name] = await self._store.create(
                user_id, Category.collection, category.to_document(),
            )

        for default in self._categories:
            if default.parent_name is None:
                continue
            await self._store.update(
                user_id,
                Category.collection,
                ids[default.name],
                {"parent_id": ids[default.parent_name]},
            )

        logger.info("categories_seeded", user_id=user_id, count=len(ids))
        await self._audit.log_categories_seeded(user_id, len(ids))
        return ids
