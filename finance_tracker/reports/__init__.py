"""Dashboard/report aggregation and export package."""

from finance_tracker.reports.aggregation import AggregationEngine
from finance_tracker.reports.export import export_transactions_csv

__all__ = ["AggregationEngine", "export_transactions_csv"]
