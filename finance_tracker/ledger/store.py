"""
Transaction Store

Ordered in-memory collection of a user's transactions, newest first.

Ordering: by transaction_date descending, ties broken by created_at
descending and then by insertion order (latest insert first).

The store never recomputes VAT. Callers run the AmountCalculator
before add/update; the Transaction model rejects records whose
total does not equal amount + vat.
"""

from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from itertools import count
from typing import Any, Iterator, Optional
from uuid import UUID, uuid4

from pyuca import Collator

from finance_tracker.errors import RecordNotFound
from finance_tracker.ledger.registry import CategoryRegistry
from finance_tracker.models.finance import Category, Transaction, TransactionQuery


# Fields the caller may not overwrite through update()
_IMMUTABLE_FIELDS = {"id", "created_at"}


@lru_cache(maxsize=1)
def _collator() -> Collator:
    # Unicode collation: umlauts sort with their base letter, case second
    return Collator()


class TransactionStore:
    """
    Newest-first transaction collection with search and sort.

    list_transactions() and view() return the same records; view() is
    a lazy generator for callers that only page through the result.
    """

    def __init__(self, transactions: Optional[list[Transaction]] = None):
        self._records: dict[UUID, Transaction] = {}
        self._sequence: dict[UUID, int] = {}
        self._counter = count()
        for transaction in transactions or []:
            self.add(transaction, assign_identity=False)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, transaction_id: UUID) -> bool:
        return transaction_id in self._records

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self._ordered())

    def get(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._records.get(transaction_id)

    def require(self, transaction_id: UUID) -> Transaction:
        transaction = self._records.get(transaction_id)
        if transaction is None:
            raise RecordNotFound("transaction", transaction_id)
        return transaction

    def all(self) -> list[Transaction]:
        return self._ordered()

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add(
        self,
        transaction: Transaction,
        assign_identity: bool = True,
    ) -> Transaction:
        """
        Insert a transaction as the newest record.

        Args:
            transaction: The record to insert
            assign_identity: Give it a fresh id and timestamps. Pass False
                for records that already come from storage.
        """
        if assign_identity:
            now = datetime.now(timezone.utc)
            transaction = transaction.model_copy(
                update={"id": uuid4(), "created_at": now, "updated_at": now}
            )

        self._records[transaction.id] = transaction
        self._sequence[transaction.id] = next(self._counter)
        return transaction

    def update(self, transaction_id: UUID, changes: dict[str, Any]) -> Transaction:
        """
        Merge changed fields into a transaction.

        The merged record is re-validated, so a change to amount or
        vat without a matching total_amount is rejected.

        Raises:
            RecordNotFound: Unknown transaction id
            pydantic.ValidationError: The merged record breaks an invariant
        """
        current = self.require(transaction_id)

        data = current.model_dump()
        data.update({k: v for k, v in changes.items() if k not in _IMMUTABLE_FIELDS})
        data["updated_at"] = datetime.now(timezone.utc)

        updated = Transaction.model_validate(data)
        self._records[transaction_id] = updated
        return updated

    def replace(self, transaction: Transaction) -> Transaction:
        """Swap in an authoritative record (e.g. returned by storage)."""
        if transaction.id not in self._records:
            raise RecordNotFound("transaction", transaction.id)
        self._records[transaction.id] = transaction
        return transaction

    def delete(self, transaction_id: UUID) -> bool:
        """Remove a transaction. Returns False if it was not there."""
        if self._records.pop(transaction_id, None) is None:
            return False
        self._sequence.pop(transaction_id, None)
        return True

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def references(self, category_id: UUID) -> int:
        """Number of transactions filed under a category."""
        return sum(1 for t in self._records.values() if t.category_id == category_id)

    def with_categories(
        self,
        registry: CategoryRegistry,
    ) -> list[tuple[Transaction, Optional[Category]]]:
        """Join each transaction (newest first) with its category."""
        return [(t, registry.get(t.category_id)) for t in self._ordered()]

    def list_transactions(
        self,
        query: Optional[TransactionQuery] = None,
        registry: Optional[CategoryRegistry] = None,
    ) -> list[Transaction]:
        return list(self.view(query, registry))

    def view(
        self,
        query: Optional[TransactionQuery] = None,
        registry: Optional[CategoryRegistry] = None,
    ) -> Iterator[Transaction]:
        """
        Filtered and sorted view of the store.

        Args:
            query: Search, filter and sort options (default: newest first)
            registry: Needed to search and sort by category name
        """
        records = self._ordered()

        if query is None:
            yield from records
            return

        matches = [t for t in records if self._matches(t, query, registry)]

        # Default ordering already is date-descending
        if query.sort_field != "transaction_date" or not query.descending:
            matches = self._sorted(matches, query.sort_field, query.descending, registry)

        yield from matches

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ordered(self) -> list[Transaction]:
        return sorted(
            self._records.values(),
            key=lambda t: (t.transaction_date, t.created_at, self._sequence[t.id]),
            reverse=True,
        )

    def _matches(
        self,
        transaction: Transaction,
        query: TransactionQuery,
        registry: Optional[CategoryRegistry],
    ) -> bool:
        if query.transaction_type and transaction.type != query.transaction_type:
            return False
        if query.category_id and transaction.category_id != query.category_id:
            return False
        if query.date_from and transaction.transaction_date < query.date_from:
            return False
        if query.date_to and transaction.transaction_date > query.date_to:
            return False

        if query.search:
            needle = query.search.strip().casefold()
            if not needle:
                return True
            category_name = registry.name_of(transaction.category_id) if registry else ""
            haystacks = [
                transaction.description,
                category_name,
                transaction.notes or "",
            ]
            return any(needle in text.casefold() for text in haystacks)

        return True

    @staticmethod
    def _sort_value(
        transaction: Transaction,
        field: str,
        registry: Optional[CategoryRegistry],
    ) -> Any:
        if field == "category":
            value: Any = registry.name_of(transaction.category_id) if registry else ""
        else:
            value = getattr(transaction, field)

        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, str):
            return _collator().sort_key(value)
        return value

    def _sorted(
        self,
        transactions: list[Transaction],
        field: str,
        descending: bool,
        registry: Optional[CategoryRegistry],
    ) -> list[Transaction]:
        """Stable sort on one field; missing values always go last."""
        present = []
        missing = []
        for t in transactions:
            value = self._sort_value(t, field, registry)
            if value is None:
                missing.append(t)
            else:
                present.append((value, t))

        present.sort(key=lambda pair: pair[0], reverse=descending)
        return [t for _, t in present] + missing
