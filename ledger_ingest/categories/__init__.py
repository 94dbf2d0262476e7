"""Default category tree and its seeder."""

from ledger_ingest.categories.defaults import DEFAULT_CATEGORIES, DefaultCategory
from ledger_ingest.categories.seeder import CategorySeeder

__all__ = ["DEFAULT_CATEGORIES", "CategorySeeder", "DefaultCategory"]
