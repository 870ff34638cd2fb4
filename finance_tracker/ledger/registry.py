"""
Category Registry

In-memory lookup of a user's categories.

The registry also owns the referential-integrity check for deletions:
a category cannot go while transactions still point at it. This check
runs before any storage call, so backends without foreign keys behave
the same as those with them.
"""

from typing import Iterable, Optional
from uuid import UUID

from finance_tracker.errors import (
    CategoryInUse,
    CategoryTypeMismatch,
    RecordNotFound,
)
from finance_tracker.models.finance import Category, Transaction, TransactionType


def filter_applicable(
    categories: Iterable[Category],
    transaction_type: TransactionType,
) -> list[Category]:
    """Categories usable for a transaction type, in their original order."""
    return [c for c in categories if c.accepts(transaction_type)]


class CategoryRegistry:
    """Ordered, id-indexed collection of categories."""

    def __init__(self, categories: Optional[Iterable[Category]] = None):
        self._categories: dict[UUID, Category] = {}
        for category in categories or []:
            self.add(category)

    def __len__(self) -> int:
        return len(self._categories)

    def __contains__(self, category_id: UUID) -> bool:
        return category_id in self._categories

    def __iter__(self):
        return iter(list(self._categories.values()))

    def all(self) -> list[Category]:
        return list(self._categories.values())

    def get(self, category_id: UUID) -> Optional[Category]:
        return self._categories.get(category_id)

    def require(self, category_id: UUID) -> Category:
        """Get a category or raise RecordNotFound."""
        category = self._categories.get(category_id)
        if category is None:
            raise RecordNotFound("category", category_id)
        return category

    def name_of(self, category_id: UUID) -> str:
        """Category name for display; empty string when unknown."""
        category = self._categories.get(category_id)
        return category.name if category else ""

    def add(self, category: Category) -> Category:
        self._categories[category.id] = category
        return category

    def replace(self, category: Category) -> Category:
        """Swap in an updated record, keeping its position."""
        if category.id not in self._categories:
            raise RecordNotFound("category", category.id)
        self._categories[category.id] = category
        return category

    def remove(self, category_id: UUID) -> bool:
        return self._categories.pop(category_id, None) is not None

    def filter_applicable(self, transaction_type: TransactionType) -> list[Category]:
        return filter_applicable(self._categories.values(), transaction_type)

    def is_vat_applicable(self, category_id: UUID) -> bool:
        """
        Whether transactions in this category may carry VAT.

        Unknown categories default to True, matching records that
        predate the flag.
        """
        category = self._categories.get(category_id)
        if category is None:
            return True
        return category.vat_applicable

    def ensure_compatible(
        self,
        category_id: UUID,
        transaction_type: TransactionType,
    ) -> Category:
        """
        Check a category may be used for a transaction type.

        Raises:
            RecordNotFound: Unknown category
            CategoryTypeMismatch: Category is for the other direction
        """
        category = self.require(category_id)
        if not category.accepts(transaction_type):
            raise CategoryTypeMismatch(
                category_name=category.name,
                category_type=category.type.value,
                transaction_type=TransactionType(transaction_type).value,
            )
        return category

    @staticmethod
    def transaction_count(
        category_id: UUID,
        transactions: Iterable[Transaction],
    ) -> int:
        return sum(1 for t in transactions if t.category_id == category_id)

    def ensure_deletable(
        self,
        category_id: UUID,
        transactions: Iterable[Transaction],
    ) -> Category:
        """
        Check no transaction references the category.

        Raises:
            RecordNotFound: Unknown category
            CategoryInUse: With the number of blocking transactions
        """
        category = self.require(category_id)
        count = self.transaction_count(category_id, transactions)
        if count > 0:
            raise CategoryInUse(category.name, count)
        return category
