"""Tests for the aggregation engine."""

import pytest
from datetime import date
from decimal import Decimal

from finance_tracker.models.finance import (
    AmountBasis,
    CategoryType,
    MonthlyBucket,
    ReportTimeframe,
    TransactionType,
)
from finance_tracker.reports import AggregationEngine

from conftest import make_category, make_transaction


REFERENCE = date(2026, 10, 17)


def bucket(balance: str) -> MonthlyBucket:
    return MonthlyBucket(year=2026, month=1, label="Jan 2026", balance=Decimal(balance))


@pytest.fixture
def engine():
    return AggregationEngine()


class TestMonthlyBuckets:
    """Bucket count, order, labels and membership."""

    def test_six_buckets_oldest_first(self, engine):
        buckets = engine.monthly_buckets([], 6, REFERENCE)

        assert len(buckets) == 6
        assert [b.label for b in buckets] == [
            "Mai 2026", "Jun 2026", "Jul 2026", "Aug 2026", "Sep 2026", "Okt 2026",
        ]
        assert all(b.revenue == 0 and b.expense == 0 and b.balance == 0 for b in buckets)

    def test_buckets_cross_year_boundary(self, engine):
        buckets = engine.monthly_buckets([], 3, date(2026, 2, 10))

        assert [(b.year, b.month) for b in buckets] == [(2025, 12), (2026, 1), (2026, 2)]
        assert buckets[0].label == "Dez 2025"

    def test_month_end_reference_keeps_short_months(self, engine):
        buckets = engine.monthly_buckets([], 3, date(2026, 3, 31))

        assert [(b.year, b.month) for b in buckets] == [(2026, 1), (2026, 2), (2026, 3)]

    def test_zero_buckets(self, engine):
        assert engine.monthly_buckets([], 0, REFERENCE) == []

    def test_negative_months_back_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.monthly_buckets([], -1, REFERENCE)

    def test_membership_by_year_and_month(self, engine):
        office = make_category("Büro")
        transactions = [
            make_transaction(office.id, amount="100.00", transaction_date=date(2026, 10, 1)),
            make_transaction(office.id, amount="50.00", transaction_date=date(2026, 10, 31)),
            # Same month a year earlier must not count
            make_transaction(office.id, amount="999.00", transaction_date=date(2025, 10, 5)),
            make_transaction(
                office.id,
                amount="300.00",
                vat="57.00",
                transaction_type=TransactionType.REVENUE,
                transaction_date=date(2026, 10, 3),
            ),
        ]

        current = engine.monthly_buckets(transactions, 6, REFERENCE)[-1]

        # Net amounts, not gross
        assert current.expense == Decimal("150.00")
        assert current.revenue == Decimal("300.00")
        assert current.balance == Decimal("150.00")


class TestCategoryBreakdown:
    """Per-category totals."""

    def test_sorted_descending_without_zeros(self, engine):
        rent = make_category("Miete", CategoryType.EXPENSE)
        office = make_category("Büro", CategoryType.EXPENSE)
        unused = make_category("Reisen", CategoryType.EXPENSE)
        transactions = [
            make_transaction(office.id, amount="100.00"),
            make_transaction(rent.id, amount="200.00"),
            make_transaction(rent.id, amount="100.00"),
        ]

        breakdown = engine.category_breakdown(
            transactions, [office, unused, rent], TransactionType.EXPENSE
        )

        assert [item.name for item in breakdown] == ["Miete", "Büro"]
        assert breakdown[0].total == Decimal("300.00")
        assert breakdown[0].share == Decimal("75.0")
        assert breakdown[1].share == Decimal("25.0")
        assert breakdown[0].color == rent.color

    def test_only_applicable_categories(self, engine):
        sales = make_category("Umsatz", CategoryType.REVENUE)
        misc = make_category("Sonstiges", CategoryType.BOTH)
        transactions = [
            make_transaction(misc.id, amount="40.00"),
            make_transaction(misc.id, amount="60.00", transaction_type=TransactionType.REVENUE),
        ]

        expenses = engine.category_breakdown(
            transactions, [sales, misc], TransactionType.EXPENSE
        )

        assert [item.name for item in expenses] == ["Sonstiges"]
        assert expenses[0].total == Decimal("40.00")

    def test_gross_basis(self, engine):
        office = make_category("Büro")
        transactions = [make_transaction(office.id, amount="100.00", vat="19.00")]

        net = engine.dashboard_expense_breakdown(transactions, [office])
        gross = engine.report_expense_breakdown(transactions, [office])

        assert net[0].total == Decimal("100.00")
        assert gross[0].total == Decimal("119.00")

    def test_empty(self, engine):
        assert engine.category_breakdown([], [], TransactionType.EXPENSE) == []

    def test_sum_amounts(self, engine):
        office = make_category("Büro")
        transactions = [make_transaction(office.id, amount="10.00", vat="1.90")]

        assert engine.sum_amounts(transactions, TransactionType.EXPENSE) == Decimal("10.00")
        assert engine.sum_amounts(
            transactions, TransactionType.EXPENSE, AmountBasis.GROSS
        ) == Decimal("11.90")
        assert engine.sum_amounts(transactions, TransactionType.REVENUE) == Decimal("0")


class TestPeriodChange:
    """Balance change between consecutive buckets."""

    def test_previous_zero_is_hundred(self):
        change = AggregationEngine.period_change_percentage(bucket("500"), bucket("0"))
        assert change == Decimal("100")

    def test_previous_zero_and_current_zero_is_hundred(self):
        change = AggregationEngine.period_change_percentage(bucket("0"), bucket("0"))
        assert change == Decimal("100")

    def test_increase(self):
        change = AggregationEngine.period_change_percentage(bucket("150"), bucket("100"))
        assert change == Decimal("50.0")

    def test_uses_absolute_previous_balance(self):
        change = AggregationEngine.period_change_percentage(bucket("50"), bucket("-100"))
        assert change == Decimal("150.0")

    def test_rounded_to_one_decimal(self):
        change = AggregationEngine.period_change_percentage(bucket("100"), bucket("300"))
        assert change == Decimal("-66.7")


class TestSummaries:
    """P&L, YTD, VAT and the screen assemblies."""

    @pytest.fixture
    def books(self):
        office = make_category("Büro", CategoryType.EXPENSE)
        consulting = make_category("Beratung", CategoryType.REVENUE)
        transactions = [
            make_transaction(
                office.id, amount="100.00", vat="19.00",
                transaction_date=date(2026, 10, 5),
            ),
            make_transaction(
                consulting.id, amount="200.00", vat="38.00",
                transaction_type=TransactionType.REVENUE,
                transaction_date=date(2026, 10, 6),
            ),
            make_transaction(
                consulting.id, amount="100.00", vat="19.00",
                transaction_type=TransactionType.REVENUE,
                transaction_date=date(2026, 9, 6),
            ),
            make_transaction(
                office.id, amount="1000.00", vat="190.00",
                transaction_date=date(2025, 12, 6),
            ),
        ]
        return transactions, [office, consulting]

    def test_profit_and_loss_net_revenue_gross_expenses(self, engine, books):
        transactions, _ = books
        pnl = engine.profit_and_loss(transactions[:2])

        assert pnl.revenue == Decimal("200.00")
        assert pnl.expenses == Decimal("119.00")
        assert pnl.profit == Decimal("81.00")

    def test_year_to_date_net(self, engine, books):
        transactions, _ = books
        ytd = engine.year_to_date_totals(transactions, REFERENCE)

        assert ytd.year == 2026
        assert ytd.revenue == Decimal("300.00")
        assert ytd.expenses == Decimal("100.00")

    def test_vat_summary(self, engine, books):
        transactions, _ = books
        vat = engine.vat_summary(transactions)

        assert vat.collected == Decimal("57.00")
        assert vat.paid == Decimal("209.00")
        assert vat.balance == Decimal("-152.00")
        assert not vat.is_payable

    def test_dashboard_summary(self, engine, books):
        transactions, categories = books
        summary = engine.dashboard_summary(transactions, categories, REFERENCE)

        assert len(summary.buckets) == 6
        assert summary.current.label == "Okt 2026"
        assert summary.current.balance == Decimal("100.00")
        # September balance 100 -> October balance 100
        assert summary.change_percentage == Decimal("0.0")
        assert summary.transaction_count == 4
        assert summary.year_to_date.expenses == Decimal("100.00")
        # VAT is all-time
        assert summary.vat.paid == Decimal("209.00")
        assert [item.total for item in summary.expense_breakdown] == [Decimal("1100.00")]

    def test_dashboard_empty(self, engine):
        summary = engine.dashboard_summary([], [], REFERENCE)

        assert len(summary.buckets) == 6
        assert summary.change_percentage == 0
        assert summary.expense_breakdown == []
        assert summary.transaction_count == 0
        assert summary.vat.balance == 0

    def test_report_expenses_gross_dashboard_ytd_net(self, engine, books):
        transactions, categories = books

        report = engine.period_report(
            transactions, categories, ReportTimeframe.MONTH, REFERENCE
        )
        summary = engine.dashboard_summary(transactions, categories, REFERENCE)

        assert report.profit_and_loss.expenses == Decimal("119.00")
        assert summary.year_to_date.expenses == Decimal("100.00")


class TestTimeframes:
    """Report timeframe starts and filtering."""

    @pytest.mark.parametrize("timeframe,expected", [
        (ReportTimeframe.MONTH, date(2026, 10, 1)),
        (ReportTimeframe.QUARTER, date(2026, 10, 1)),
        (ReportTimeframe.YEAR, date(2026, 1, 1)),
    ])
    def test_timeframe_start(self, timeframe, expected):
        assert AggregationEngine.timeframe_start(timeframe, REFERENCE) == expected

    def test_quarter_start_mid_quarter(self):
        start = AggregationEngine.timeframe_start(ReportTimeframe.QUARTER, date(2026, 5, 20))
        assert start == date(2026, 4, 1)

    def test_filter_includes_start_day(self, engine):
        office = make_category("Büro")
        on_start = make_transaction(office.id, transaction_date=date(2026, 10, 1))
        before = make_transaction(office.id, transaction_date=date(2026, 9, 30))

        result = engine.filter_by_timeframe([on_start, before], ReportTimeframe.MONTH, REFERENCE)

        assert result == [on_start]

    def test_period_report_empty(self, engine):
        report = engine.period_report([], [], ReportTimeframe.YEAR, REFERENCE)

        assert report.start_date == date(2026, 1, 1)
        assert report.profit_and_loss.profit == 0
        assert report.transaction_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
