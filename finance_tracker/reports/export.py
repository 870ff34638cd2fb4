"""
Transaction Export

Writes transactions as CSV the way German spreadsheet programs expect
it: semicolon separated, comma decimals, DD.MM.YYYY dates.
"""

import csv
import io
from decimal import Decimal
from typing import Iterable

from finance_tracker.formatting import format_date
from finance_tracker.ledger.registry import CategoryRegistry
from finance_tracker.models.finance import Transaction, TransactionType


EXPORT_COLUMNS = [
    "Datum",
    "Typ",
    "Kategorie",
    "Beschreibung",
    "Netto",
    "MwSt",
    "Brutto",
    "Notizen",
]

TYPE_LABELS = {
    TransactionType.EXPENSE: "Ausgabe",
    TransactionType.REVENUE: "Einnahme",
}


def _decimal_comma(value: Decimal) -> str:
    return f"{value:.2f}".replace(".", ",")


def export_transactions_csv(
    transactions: Iterable[Transaction],
    registry: CategoryRegistry,
    include_invoices: bool = False,
) -> str:
    """
    Render transactions as CSV text.

    Args:
        transactions: Rows in the order they should appear
        registry: Used to resolve category names
        include_invoices: Add a column with the invoice storage path

    Returns:
        CSV document including the header row
    """
    columns = list(EXPORT_COLUMNS)
    if include_invoices:
        columns.append("Rechnung")

    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=";", lineterminator="\n")
    writer.writerow(columns)

    for t in transactions:
        row = [
            format_date(t.transaction_date),
            TYPE_LABELS[t.type],
            registry.name_of(t.category_id),
            t.description,
            _decimal_comma(t.amount),
            _decimal_comma(t.vat),
            _decimal_comma(t.total_amount),
            t.notes or "",
        ]
        if include_invoices:
            row.append(t.invoice_path or "")
        writer.writerow(row)

    return buffer.getvalue()
