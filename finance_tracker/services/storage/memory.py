"""
In-Memory Storage Implementation

Dict-backed storage used by the tests and as the fallback when no
Google Sheets credentials are configured. Data lives only as long as
the process.

Behaves like a database with a foreign key from transactions to
categories: deleting a category that is still referenced raises
IntegrityError.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.finance import Category, Transaction, UserSettings
from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    FinanceStorageInterface,
    IntegrityError,
    NotFoundError,
    StorageError,
)


class InMemoryFinanceStorage(FinanceStorageInterface):
    """
    In-memory implementation of finance storage.

    Records are copied on the way in and out so callers never share
    instances with the store.
    """

    def __init__(self):
        self._categories: dict[str, dict[UUID, Category]] = defaultdict(dict)
        self._transactions: dict[str, dict[UUID, Transaction]] = defaultdict(dict)
        self._settings: dict[str, UserSettings] = {}
        self._pending_failures: dict[str, StorageError] = {}

    def fail_next(self, operation: str, error: Optional[StorageError] = None) -> None:
        """
        Make the next call of an operation raise.

        Args:
            operation: Method name, e.g. 'insert_transaction'
            error: Exception to raise (default: StorageError)
        """
        self._pending_failures[operation] = error or StorageError(
            f"Simulated failure in {operation}"
        )

    def _check_failure(self, operation: str) -> None:
        error = self._pending_failures.pop(operation, None)
        if error is not None:
            raise error

    # Categories

    async def list_categories(self, user_id: str) -> list[Category]:
        self._check_failure("list_categories")
        categories = sorted(
            self._categories[user_id].values(),
            key=lambda c: c.created_at,
            reverse=True,
        )
        return [c.model_copy(deep=True) for c in categories]

    async def insert_category(self, user_id: str, category: Category) -> Category:
        self._check_failure("insert_category")
        if category.id in self._categories[user_id]:
            raise DuplicateError(f"Category already exists: {category.id}")
        stored = category.model_copy(deep=True)
        self._categories[user_id][stored.id] = stored
        return stored.model_copy(deep=True)

    async def update_category(self, user_id: str, category: Category) -> Category:
        self._check_failure("update_category")
        if category.id not in self._categories[user_id]:
            raise NotFoundError(f"Category not found: {category.id}")
        stored = category.model_copy(deep=True)
        self._categories[user_id][stored.id] = stored
        return stored.model_copy(deep=True)

    async def delete_category(self, user_id: str, category_id: UUID) -> bool:
        self._check_failure("delete_category")
        if category_id not in self._categories[user_id]:
            return False
        if await self.count_transactions_for_category(user_id, category_id):
            raise IntegrityError(
                f"Category {category_id} violates foreign key constraint on transactions"
            )
        del self._categories[user_id][category_id]
        return True

    # Transactions

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        self._check_failure("list_transactions")
        transactions = sorted(
            self._transactions[user_id].values(),
            key=lambda t: (t.transaction_date, t.created_at),
            reverse=True,
        )
        return [t.model_copy(deep=True) for t in transactions]

    async def insert_transaction(
        self,
        user_id: str,
        transaction: Transaction,
    ) -> Transaction:
        self._check_failure("insert_transaction")
        if transaction.id in self._transactions[user_id]:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        if transaction.category_id not in self._categories[user_id]:
            raise IntegrityError(f"Unknown category: {transaction.category_id}")
        stored = transaction.model_copy(deep=True)
        self._transactions[user_id][stored.id] = stored
        return stored.model_copy(deep=True)

    async def update_transaction(
        self,
        user_id: str,
        transaction: Transaction,
    ) -> Transaction:
        self._check_failure("update_transaction")
        if transaction.id not in self._transactions[user_id]:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        if transaction.category_id not in self._categories[user_id]:
            raise IntegrityError(f"Unknown category: {transaction.category_id}")
        stored = transaction.model_copy(
            update={"updated_at": datetime.now(timezone.utc)}, deep=True
        )
        self._transactions[user_id][stored.id] = stored
        return stored.model_copy(deep=True)

    async def delete_transaction(self, user_id: str, transaction_id: UUID) -> bool:
        self._check_failure("delete_transaction")
        return self._transactions[user_id].pop(transaction_id, None) is not None

    async def count_transactions_for_category(
        self,
        user_id: str,
        category_id: UUID,
    ) -> int:
        self._check_failure("count_transactions_for_category")
        return sum(
            1 for t in self._transactions[user_id].values()
            if t.category_id == category_id
        )

    # Settings

    async def get_user_settings(self, user_id: str) -> Optional[UserSettings]:
        self._check_failure("get_user_settings")
        settings = self._settings.get(user_id)
        return settings.model_copy() if settings else None

    async def save_user_settings(
        self,
        user_id: str,
        settings: UserSettings,
    ) -> UserSettings:
        self._check_failure("save_user_settings")
        self._settings[user_id] = settings.model_copy()
        return settings.model_copy()


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
