"""
Core Data Models for the Finance Tracker

These models define the schemas for everything that flows through the
tracker: categories, transactions, form drafts, user settings and the
aggregated summaries shown on the dashboard and reports pages.

DESIGN DECISION: Stored money is always Decimal with two decimal places.
Floats never touch an amount that is stored or summed.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


DEFAULT_CATEGORY_COLOR = "#9CA3AF"

ZERO = Decimal("0.00")

# Raw amount as it arrives from a form field
RawAmount = Union[str, int, float, Decimal, None]


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction."""
    EXPENSE = "expense"
    REVENUE = "revenue"


class CategoryType(str, Enum):
    """
    Which transactions a category may be used for.

    BOTH categories accept expenses and revenue alike.
    """
    EXPENSE = "expense"
    REVENUE = "revenue"
    BOTH = "both"


class RecurringFrequency(str, Enum):
    """How often a recurring transaction repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class VatMode(str, Enum):
    """
    How VAT is determined for a new transaction.

    AUTO applies the configured rate, MANUAL takes the user's figure.
    """
    AUTO = "auto"
    MANUAL = "manual"


class AmountBasis(str, Enum):
    """Which transaction amount an aggregate sums."""
    NET = "net"      # Transaction.amount
    GROSS = "gross"  # Transaction.total_amount


class ReportTimeframe(str, Enum):
    """Report periods, each running from its start until today."""
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


# =============================================================================
# CORE MODELS
# =============================================================================

class Category(BaseModel):
    """
    A user-defined transaction category.

    CRITICAL: vat_applicable=False forces zero VAT on every transaction
    in this category, whatever the global VAT mode says.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique category ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    type: CategoryType = Field(
        default=CategoryType.BOTH,
        description="Transaction types this category accepts"
    )
    color: str = Field(
        default=DEFAULT_CATEGORY_COLOR,
        pattern=r"^#[0-9A-Fa-f]{6}$",
        description="Hex color used in charts"
    )
    # Older records have no flag; they count as VAT-applicable
    vat_applicable: bool = Field(
        default=True,
        description="False forces zero VAT on all transactions in this category"
    )
    created_at: datetime = Field(
        default_factory=utc_now
    )

    def accepts(self, transaction_type: TransactionType) -> bool:
        """Check whether a transaction of this type may use the category."""
        return (
            self.type == CategoryType.BOTH
            or self.type.value == TransactionType(transaction_type).value
        )


class Transaction(BaseModel):
    """
    A single income or expense record.

    total_amount is derived: it always equals amount + vat.
    It is never edited on its own.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )

    transaction_date: date = Field(
        ...,
        description="Booking date"
    )
    type: TransactionType
    category_id: UUID = Field(
        ...,
        description="Category this transaction is filed under"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500
    )

    # Amounts
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Net amount in EUR"
    )
    vat: Decimal = Field(
        default=ZERO,
        ge=0,
        decimal_places=2,
        description="VAT in EUR"
    )
    total_amount: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Gross amount in EUR (amount + vat)"
    )

    notes: Optional[str] = Field(
        default=None,
        max_length=1000
    )
    invoice_path: Optional[str] = Field(
        default=None,
        description="Storage path of the attached invoice"
    )

    recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    vat_exempt: bool = Field(
        default=False,
        description="Explicitly carries zero VAT regardless of VAT mode"
    )

    # Timestamps
    created_at: datetime = Field(
        default_factory=utc_now
    )
    updated_at: datetime = Field(
        default_factory=utc_now
    )

    @model_validator(mode='after')
    def validate_amounts(self) -> 'Transaction':
        """Validate the derived amount relationships."""
        if self.vat_exempt and self.vat != 0:
            raise ValueError("VAT-exempt transactions cannot carry VAT")

        if self.total_amount != self.amount + self.vat:
            raise ValueError("Total amount must equal amount plus VAT")

        if not self.recurring:
            self.recurring_frequency = None

        return self

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def is_revenue(self) -> bool:
        return self.type == TransactionType.REVENUE


class TransactionDraft(BaseModel):
    """
    Transaction as entered in the form, before amounts are computed.

    Amounts are kept raw: the form sends text and the calculator
    decides what is a valid number.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    transaction_date: date = Field(
        default_factory=date.today
    )
    type: TransactionType
    category_id: UUID
    description: str = Field(
        ...,
        min_length=1,
        max_length=500
    )
    amount: RawAmount = Field(
        default=None,
        description="Net amount as typed"
    )
    manual_vat: RawAmount = Field(
        default="0",
        description="VAT as typed (only used in manual mode)"
    )
    vat_exempt: bool = False
    notes: Optional[str] = Field(
        default=None,
        max_length=1000
    )
    invoice_path: Optional[str] = None
    recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None

    @field_validator('notes', 'invoice_path')
    @classmethod
    def empty_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Blank optional text fields are stored as missing."""
        return v or None


class UserSettings(BaseModel):
    """
    Per-user preferences.

    Passed explicitly into calculations; there is no global settings state.
    """

    auto_vat: bool = Field(
        default=True,
        description="Compute VAT automatically at the standard rate"
    )
    currency_display: bool = Field(
        default=True,
        description="Show the currency symbol next to amounts"
    )
    auto_backup: bool = Field(
        default=True,
        description="Keep automatic backups of the data"
    )

    @property
    def vat_mode(self) -> VatMode:
        return VatMode.AUTO if self.auto_vat else VatMode.MANUAL


class AmountBreakdown(BaseModel):
    """Result of a VAT computation for one net amount."""

    vat: Decimal
    total: Decimal


# =============================================================================
# AGGREGATION MODELS
# =============================================================================

class MonthlyBucket(BaseModel):
    """
    Net revenue and expense for one calendar month.

    Transactions belong to a bucket by (year, month) equality.
    """

    year: int
    month: int = Field(ge=1, le=12)
    label: str = Field(
        ...,
        description="Short label such as 'Okt 2026'"
    )
    revenue: Decimal = ZERO
    expense: Decimal = ZERO
    balance: Decimal = ZERO


class CategoryTotal(BaseModel):
    """One slice of a category breakdown."""

    category_id: UUID
    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    total: Decimal
    share: Decimal = Field(
        default=ZERO,
        description="Percentage of the breakdown's grand total (1 dp)"
    )


class VatSummary(BaseModel):
    """Output VAT collected versus input VAT paid."""

    collected: Decimal = ZERO
    paid: Decimal = ZERO
    balance: Decimal = ZERO

    @property
    def is_payable(self) -> bool:
        """Positive balance is owed to the tax office; otherwise it is a refund."""
        return self.balance > 0


class ProfitAndLoss(BaseModel):
    """
    Profit and loss for a period.

    Revenue is net, expenses are gross (what actually left the account).
    """

    revenue: Decimal = ZERO
    expenses: Decimal = ZERO
    profit: Decimal = ZERO


class YearToDateTotals(BaseModel):
    """Net revenue and expense totals for one calendar year."""

    year: int
    revenue: Decimal = ZERO
    expenses: Decimal = ZERO


class DashboardSummary(BaseModel):
    """Everything the dashboard page renders."""

    buckets: list[MonthlyBucket] = Field(default_factory=list)
    current: MonthlyBucket
    change_percentage: Decimal = ZERO
    expense_breakdown: list[CategoryTotal] = Field(default_factory=list)
    transaction_count: int = Field(default=0, ge=0)
    year_to_date: YearToDateTotals
    vat: VatSummary = Field(default_factory=VatSummary)


class PeriodReport(BaseModel):
    """Everything the reports page renders for one timeframe."""

    timeframe: ReportTimeframe
    start_date: date
    profit_and_loss: ProfitAndLoss = Field(default_factory=ProfitAndLoss)
    expense_breakdown: list[CategoryTotal] = Field(default_factory=list)
    revenue_breakdown: list[CategoryTotal] = Field(default_factory=list)
    vat: VatSummary = Field(default_factory=VatSummary)
    transaction_count: int = Field(default=0, ge=0)


# =============================================================================
# QUERY MODELS
# =============================================================================

SORTABLE_FIELDS = (
    "transaction_date",
    "type",
    "category",
    "description",
    "amount",
    "vat",
    "total_amount",
    "notes",
    "recurring",
    "created_at",
    "updated_at",
)


class TransactionQuery(BaseModel):
    """Search, filter and sort options for the transaction table."""

    search: Optional[str] = Field(
        default=None,
        description="Case-insensitive substring over description, category name and notes"
    )
    sort_field: str = Field(
        default="transaction_date",
        description="Field to sort by"
    )
    descending: bool = True
    transaction_type: Optional[TransactionType] = None
    category_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @field_validator('sort_field')
    @classmethod
    def validate_sort_field(cls, v: str) -> str:
        if v not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot sort by {v}. Allowed: {SORTABLE_FIELDS}")
        return v


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'type_mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage draft validation.

    Stage 1: Schema validation (amount parses, category exists)
    Stage 2: Business rules (category type, VAT consistency)
    """

    validated_at: datetime = Field(
        default_factory=utc_now
    )

    schema_valid: bool
    rules_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
