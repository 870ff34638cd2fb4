"""Shared factories for the finance tracker tests."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import pytest

from finance_tracker.audit import AuditLogger
from finance_tracker.models.finance import (
    Category,
    CategoryType,
    Transaction,
    TransactionType,
)
from finance_tracker.orchestrator import FinanceSession
from finance_tracker.services.storage import InMemoryAuditStorage, InMemoryFinanceStorage


def make_category(
    name: str = "Büro",
    category_type: CategoryType = CategoryType.BOTH,
    vat_applicable: bool = True,
    color: str = "#3B82F6",
) -> Category:
    return Category(
        name=name,
        type=category_type,
        vat_applicable=vat_applicable,
        color=color,
    )


def make_transaction(
    category_id: UUID,
    amount: str = "100.00",
    vat: str = "19.00",
    transaction_type: TransactionType = TransactionType.EXPENSE,
    transaction_date: date = date(2026, 10, 1),
    description: str = "Papier",
    notes: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Transaction:
    net = Decimal(amount)
    tax = Decimal(vat)
    extra = {"created_at": created_at} if created_at else {}
    return Transaction(
        transaction_date=transaction_date,
        type=transaction_type,
        category_id=category_id,
        description=description,
        amount=net,
        vat=tax,
        total_amount=net + tax,
        notes=notes,
        **extra,
    )


@pytest.fixture
def storage() -> InMemoryFinanceStorage:
    return InMemoryFinanceStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def session(storage, audit_storage) -> FinanceSession:
    return FinanceSession(
        user_id="user-1",
        storage=storage,
        audit_logger=AuditLogger(audit_storage),
    )
