"""
Domain Errors

Every error a user can trigger carries a human-readable ``user_message``.
The UI shows that message as-is; nothing is silently corrected.
"""

from typing import Any, Optional


class FinanceTrackerError(Exception):
    """Base exception for all finance tracker errors."""

    def __init__(self, user_message: str):
        super().__init__(user_message)
        self.user_message = user_message


class InvalidAmount(FinanceTrackerError):
    """Net amount is missing, non-numeric, not positive or too precise."""

    def __init__(self, raw: Any, reason: Optional[str] = None):
        self.raw = raw
        reason = reason or "Amount must be a number greater than zero"
        super().__init__(f"{reason} (got: {raw!r})")


class CategoryTypeMismatch(FinanceTrackerError):
    """Selected category cannot be used for this transaction type."""

    def __init__(
        self,
        category_name: str,
        category_type: str,
        transaction_type: str,
    ):
        self.category_name = category_name
        self.category_type = category_type
        self.transaction_type = transaction_type
        super().__init__(
            f"Category '{category_name}' is for {category_type} transactions "
            f"and cannot be used for a {transaction_type} transaction"
        )


class CategoryInUse(FinanceTrackerError):
    """Category deletion blocked because transactions still reference it."""

    def __init__(self, category_name: str, count: int):
        self.category_name = category_name
        self.count = count
        plural = "s" if count > 1 else ""
        super().__init__(
            f"Cannot delete category '{category_name}' because it has {count} "
            f"transaction{plural} assigned to it. Please reassign or delete "
            f"these transactions first."
        )


class RecordNotFound(FinanceTrackerError):
    """A transaction or category id does not exist."""

    def __init__(self, entity: str, record_id: Any):
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity.capitalize()} not found: {record_id}")


class PersistenceFailure(FinanceTrackerError):
    """
    The storage collaborator failed.

    In-memory state is left unchanged when this is raised.
    """

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"Error {operation}: {message}")
