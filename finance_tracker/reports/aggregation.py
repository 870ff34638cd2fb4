"""
Aggregation Engine

Turns a flat transaction list into the bucketed summaries the dashboard
and reports pages render. Everything is recomputed on read from the
current transactions; nothing is cached.

AMOUNT BASES (kept exactly as the screens have always shown them):
- Dashboard charts, expense pie and YTD quick stats sum NET amounts
  for both revenue and expenses.
- Reports sum NET amounts for revenue but GROSS totals for expenses,
  i.e. what actually left the account including input VAT.
- VAT collected/paid always sum the vat field, scoped by type.

The two expense figures differ on purpose and live in separately
named operations; do not merge them.

Empty input never fails: every aggregate comes back zero-filled.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from finance_tracker.formatting import month_abbreviation
from finance_tracker.ledger.registry import filter_applicable
from finance_tracker.models.finance import (
    AmountBasis,
    Category,
    CategoryTotal,
    DashboardSummary,
    MonthlyBucket,
    PeriodReport,
    ProfitAndLoss,
    ReportTimeframe,
    Transaction,
    TransactionType,
    VatSummary,
    YearToDateTotals,
)


ZERO = Decimal("0.00")
ONE_PLACE = Decimal("0.1")
HUNDRED = Decimal("100")


def _amount_of(transaction: Transaction, basis: AmountBasis) -> Decimal:
    if basis == AmountBasis.GROSS:
        return transaction.total_amount
    return transaction.amount


def _sum(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


class AggregationEngine:
    """
    Computes dashboard and report aggregates.

    GUARANTEES:
    - Pure: the same transactions always give the same numbers
    - Monthly buckets always number exactly months_back
    - Breakdowns never contain zero-total categories
    """

    # -------------------------------------------------------------------------
    # Building blocks
    # -------------------------------------------------------------------------

    def sum_amounts(
        self,
        transactions: Iterable[Transaction],
        transaction_type: TransactionType,
        basis: AmountBasis = AmountBasis.NET,
    ) -> Decimal:
        """Sum net or gross amounts of one transaction type."""
        return _sum(
            _amount_of(t, basis)
            for t in transactions
            if t.type == transaction_type
        )

    def monthly_buckets(
        self,
        transactions: Iterable[Transaction],
        months_back: int,
        reference_date: date,
    ) -> list[MonthlyBucket]:
        """
        Net revenue/expense per calendar month, oldest first.

        Produces exactly months_back buckets ending with the reference
        month. A transaction lands in a bucket when its (year, month)
        equals the bucket's; months without transactions are zero.
        """
        if months_back < 0:
            raise ValueError(f"months_back cannot be negative: {months_back}")

        transactions = list(transactions)
        buckets = []

        for offset in range(months_back - 1, -1, -1):
            first_of_month = reference_date.replace(day=1) - relativedelta(months=offset)
            year, month = first_of_month.year, first_of_month.month

            in_month = [
                t for t in transactions
                if t.transaction_date.year == year and t.transaction_date.month == month
            ]
            revenue = self.sum_amounts(in_month, TransactionType.REVENUE)
            expense = self.sum_amounts(in_month, TransactionType.EXPENSE)

            buckets.append(MonthlyBucket(
                year=year,
                month=month,
                label=f"{month_abbreviation(month)} {year}",
                revenue=revenue,
                expense=expense,
                balance=revenue - expense,
            ))

        return buckets

    def category_breakdown(
        self,
        transactions: Iterable[Transaction],
        categories: Iterable[Category],
        transaction_type: TransactionType,
        basis: AmountBasis = AmountBasis.NET,
    ) -> list[CategoryTotal]:
        """
        Totals per category applicable to a transaction type.

        Zero totals are dropped and the result is sorted by total,
        largest first. Ties keep the category order.
        """
        transactions = [t for t in transactions if t.type == transaction_type]

        totals = []
        for category in filter_applicable(categories, transaction_type):
            total = _sum(
                _amount_of(t, basis)
                for t in transactions
                if t.category_id == category.id
            )
            if total == 0:
                continue
            totals.append(CategoryTotal(
                category_id=category.id,
                name=category.name,
                color=category.color,
                total=total,
            ))

        grand_total = _sum(item.total for item in totals)
        for item in totals:
            item.share = (item.total / grand_total * HUNDRED).quantize(
                ONE_PLACE, rounding=ROUND_HALF_UP
            )

        totals.sort(key=lambda item: item.total, reverse=True)
        return totals

    @staticmethod
    def period_change_percentage(
        current: MonthlyBucket,
        previous: MonthlyBucket,
    ) -> Decimal:
        """
        Balance change between two buckets in percent, one decimal.

        A zero previous balance counts as a full positive swing (100)
        rather than a division error.
        """
        if previous.balance == 0:
            return Decimal("100.0")

        change = (current.balance - previous.balance) / abs(previous.balance) * HUNDRED
        return change.quantize(ONE_PLACE, rounding=ROUND_HALF_UP)

    # -------------------------------------------------------------------------
    # Named operations (amount basis fixed per screen)
    # -------------------------------------------------------------------------

    def dashboard_expense_breakdown(
        self,
        transactions: Iterable[Transaction],
        categories: Iterable[Category],
    ) -> list[CategoryTotal]:
        """Expenses by category on the dashboard pie chart (net amounts)."""
        return self.category_breakdown(
            transactions, categories, TransactionType.EXPENSE, AmountBasis.NET
        )

    def report_expense_breakdown(
        self,
        transactions: Iterable[Transaction],
        categories: Iterable[Category],
    ) -> list[CategoryTotal]:
        """Expenses by category in reports (gross totals incl. VAT)."""
        return self.category_breakdown(
            transactions, categories, TransactionType.EXPENSE, AmountBasis.GROSS
        )

    def report_revenue_breakdown(
        self,
        transactions: Iterable[Transaction],
        categories: Iterable[Category],
    ) -> list[CategoryTotal]:
        """Revenue by category in reports (net amounts)."""
        return self.category_breakdown(
            transactions, categories, TransactionType.REVENUE, AmountBasis.NET
        )

    def profit_and_loss(self, transactions: Iterable[Transaction]) -> ProfitAndLoss:
        """Net revenue against gross expenses."""
        transactions = list(transactions)
        revenue = self.sum_amounts(transactions, TransactionType.REVENUE, AmountBasis.NET)
        expenses = self.sum_amounts(transactions, TransactionType.EXPENSE, AmountBasis.GROSS)
        return ProfitAndLoss(
            revenue=revenue,
            expenses=expenses,
            profit=revenue - expenses,
        )

    def year_to_date_totals(
        self,
        transactions: Iterable[Transaction],
        reference_date: date,
    ) -> YearToDateTotals:
        """Net revenue and expenses dated in the reference year."""
        in_year = [
            t for t in transactions
            if t.transaction_date.year == reference_date.year
        ]
        return YearToDateTotals(
            year=reference_date.year,
            revenue=self.sum_amounts(in_year, TransactionType.REVENUE),
            expenses=self.sum_amounts(in_year, TransactionType.EXPENSE),
        )

    def vat_summary(self, transactions: Iterable[Transaction]) -> VatSummary:
        """Output VAT (revenue) against input VAT (expenses)."""
        transactions = list(transactions)
        collected = _sum(t.vat for t in transactions if t.is_revenue)
        paid = _sum(t.vat for t in transactions if t.is_expense)
        return VatSummary(
            collected=collected,
            paid=paid,
            balance=collected - paid,
        )

    # -------------------------------------------------------------------------
    # Timeframes
    # -------------------------------------------------------------------------

    @staticmethod
    def timeframe_start(timeframe: ReportTimeframe, reference_date: date) -> date:
        """First day of the month, quarter or year containing reference_date."""
        timeframe = ReportTimeframe(timeframe)
        if timeframe == ReportTimeframe.MONTH:
            return reference_date.replace(day=1)
        if timeframe == ReportTimeframe.QUARTER:
            first_month = (reference_date.month - 1) // 3 * 3 + 1
            return date(reference_date.year, first_month, 1)
        return date(reference_date.year, 1, 1)

    def filter_by_timeframe(
        self,
        transactions: Iterable[Transaction],
        timeframe: ReportTimeframe,
        reference_date: date,
    ) -> list[Transaction]:
        """Transactions dated on or after the start of the timeframe."""
        start = self.timeframe_start(timeframe, reference_date)
        return [t for t in transactions if t.transaction_date >= start]

    # -------------------------------------------------------------------------
    # Screen assemblies
    # -------------------------------------------------------------------------

    def dashboard_summary(
        self,
        transactions: Iterable[Transaction],
        categories: Iterable[Category],
        reference_date: date,
        months_back: int = 6,
    ) -> DashboardSummary:
        """
        Everything the dashboard shows.

        The change percentage compares the last two buckets and stays 0
        when there are no transactions at all.
        """
        transactions = list(transactions)
        categories = list(categories)

        buckets = self.monthly_buckets(transactions, months_back, reference_date)
        if buckets:
            current = buckets[-1]
        else:
            current = self.monthly_buckets([], 1, reference_date)[0]

        change = ZERO
        if transactions and len(buckets) >= 2:
            change = self.period_change_percentage(buckets[-1], buckets[-2])

        return DashboardSummary(
            buckets=buckets,
            current=current,
            change_percentage=change,
            expense_breakdown=self.dashboard_expense_breakdown(transactions, categories),
            transaction_count=len(transactions),
            year_to_date=self.year_to_date_totals(transactions, reference_date),
            vat=self.vat_summary(transactions),
        )

    def period_report(
        self,
        transactions: Iterable[Transaction],
        categories: Iterable[Category],
        timeframe: ReportTimeframe,
        reference_date: Optional[date] = None,
    ) -> PeriodReport:
        """Profit & loss, breakdowns and VAT for one report timeframe."""
        reference_date = reference_date or date.today()
        categories = list(categories)
        in_period = self.filter_by_timeframe(transactions, timeframe, reference_date)

        return PeriodReport(
            timeframe=ReportTimeframe(timeframe),
            start_date=self.timeframe_start(timeframe, reference_date),
            profit_and_loss=self.profit_and_loss(in_period),
            expense_breakdown=self.report_expense_breakdown(in_period, categories),
            revenue_breakdown=self.report_revenue_breakdown(in_period, categories),
            vat=self.vat_summary(in_period),
            transaction_count=len(in_period),
        )
