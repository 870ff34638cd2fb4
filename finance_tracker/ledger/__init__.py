"""In-memory category registry and transaction store."""

from finance_tracker.ledger.registry import CategoryRegistry, filter_applicable
from finance_tracker.ledger.store import TransactionStore

__all__ = ["CategoryRegistry", "TransactionStore", "filter_applicable"]
