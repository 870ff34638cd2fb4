"""
Data Models Package

This package contains all Pydantic models used in the finance tracker.
All data flowing through the system must conform to these schemas.
"""

from finance_tracker.models.finance import (
    AmountBasis,
    AmountBreakdown,
    Category,
    CategoryTotal,
    CategoryType,
    DashboardSummary,
    MonthlyBucket,
    PeriodReport,
    ProfitAndLoss,
    RecurringFrequency,
    ReportTimeframe,
    Transaction,
    TransactionDraft,
    TransactionQuery,
    TransactionType,
    UserSettings,
    ValidationIssue,
    ValidationResult,
    VatMode,
    VatSummary,
    YearToDateTotals,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "AmountBasis",
    "AmountBreakdown",
    "Category",
    "CategoryTotal",
    "CategoryType",
    "DashboardSummary",
    "MonthlyBucket",
    "PeriodReport",
    "ProfitAndLoss",
    "RecurringFrequency",
    "ReportTimeframe",
    "Transaction",
    "TransactionDraft",
    "TransactionQuery",
    "TransactionType",
    "UserSettings",
    "ValidationIssue",
    "ValidationResult",
    "VatMode",
    "VatSummary",
    "YearToDateTotals",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
