"""
Default category tree seeded for every new user.

Two roots, Debits (money in) and Credits (money out), with up to two
further levels below them. Parents are referenced by name and must
appear in the list; names are unique.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from ledger_ingest.models.documents import CategoryType


class DefaultCategory(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    parent_name: Optional[str]
    type: CategoryType
    sort_order: int


_DEBIT = CategoryType.DEBIT
_CREDIT = CategoryType.CREDIT

_TREE = [
    # Debits (income)
    ("Debits", None, _DEBIT, 0),
    ("Transfer In", "Debits", _DEBIT, 0),
    ("Income", "Debits", _DEBIT, 1),
    ("Salary", "Income", _DEBIT, 0),
    ("Freelance", "Income", _DEBIT, 1),
    ("Investment Returns", "Income", _DEBIT, 2),
    ("Other Income", "Income", _DEBIT, 3),
    # Credits (expenses)
    ("Credits", None, _CREDIT, 1),
    ("Transfer Out", "Credits", _CREDIT, 0),
    ("Supplies", "Credits", _CREDIT, 1),
    ("Items", "Credits", _CREDIT, 2),
    ("Food", "Credits", _CREDIT, 3),
    ("Groceries", "Food", _CREDIT, 0),
    ("Restaurants", "Food", _CREDIT, 1),
    ("Transportation", "Credits", _CREDIT, 4),
    ("Gas", "Transportation", _CREDIT, 0),
    ("Public Transit", "Transportation", _CREDIT, 1),
    ("Rideshare", "Transportation", _CREDIT, 2),
    ("Utilities", "Credits", _CREDIT, 5),
    ("Electric", "Utilities", _CREDIT, 0),
    ("Water", "Utilities", _CREDIT, 1),
    ("Internet", "Utilities", _CREDIT, 2),
    ("Phone", "Utilities", _CREDIT, 3),
    ("Housing", "Credits", _CREDIT, 6),
    ("Rent", "Housing", _CREDIT, 0),
    ("Mortgage", "Housing", _CREDIT, 1),
    ("Maintenance", "Housing", _CREDIT, 2),
    ("Subscriptions", "Credits", _CREDIT, 7),
    ("Streaming Services", "Subscriptions", _CREDIT, 0),
    ("Software", "Subscriptions", _CREDIT, 1),
    ("Loan Repayments", "Credits", _CREDIT, 8),
    ("Student Loans", "Loan Repayments", _CREDIT, 0),
    ("Personal Loans", "Loan Repayments", _CREDIT, 1),
    ("Tuition", "Credits", _CREDIT, 9),
    ("Miscellaneous", "Credits", _CREDIT, 10),
]

DEFAULT_CATEGORIES: tuple[DefaultCategory, ...] = tuple(
    DefaultCategory(name=name, parent_name=parent, type=kind, sort_order=order)
    for name, parent, kind, order in _TREE
)
