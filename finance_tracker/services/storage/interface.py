"""
Abstract Storage Interface

DESIGN DECISION: The session only talks to these two interfaces.
Google Sheets and the in-memory store both implement them, and the
session cannot tell which one it holds.

Writes either fully succeed (the returned record is authoritative,
including any fields the backend fills in) or raise. A failed write
must not leave a partial record behind.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.finance import Category, Transaction, UserSettings


class FinanceStorageInterface(ABC):
    """
    Abstract interface for a user's categories, transactions and settings.

    Every call is scoped to one user; no method returns another
    user's records.
    """

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_categories(self, user_id: str) -> list[Category]:
        """
        List a user's categories, newest first.

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def insert_category(self, user_id: str, category: Category) -> Category:
        """
        Store a new category.

        Returns:
            The stored category as the backend sees it

        Raises:
            DuplicateError: If the id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_category(self, user_id: str, category: Category) -> Category:
        """
        Replace an existing category.

        Raises:
            NotFoundError: If the category doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_category(self, user_id: str, category_id: UUID) -> bool:
        """
        Delete a category.

        Returns:
            True if deleted, False if it did not exist

        Raises:
            IntegrityError: If transactions still reference the category
            StorageError: If the write fails
        """
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_transactions(self, user_id: str) -> list[Transaction]:
        """
        List a user's transactions, newest first.

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def insert_transaction(
        self,
        user_id: str,
        transaction: Transaction,
    ) -> Transaction:
        """
        Store a new transaction.

        Returns:
            The stored transaction as the backend sees it

        Raises:
            DuplicateError: If the id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        user_id: str,
        transaction: Transaction,
    ) -> Transaction:
        """
        Replace an existing transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, user_id: str, transaction_id: UUID) -> bool:
        """
        Delete a transaction.

        Returns:
            True if deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def count_transactions_for_category(
        self,
        user_id: str,
        category_id: UUID,
    ) -> int:
        """Number of the user's transactions filed under a category."""
        pass

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_user_settings(self, user_id: str) -> Optional[UserSettings]:
        """
        Read a user's settings.

        Returns:
            The settings, or None if the user has none stored yet
        """
        pass

    @abstractmethod
    async def save_user_settings(
        self,
        user_id: str,
        settings: UserSettings,
    ) -> UserSettings:
        """Create or replace a user's settings."""
        pass


class AuditStorageInterface(ABC):
    """
    Append-only store for audit events.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class IntegrityError(StorageError):
    """A write would break a reference (e.g. deleting a used category)."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
