"""
Display Formatting (de-DE)

Amounts are shown the German way: dot for thousands, comma for decimals,
euro sign after the number. The aggregation engine only borrows the
month names for bucket labels; amounts leave the core as numbers.
"""

from datetime import date
from decimal import Decimal
from typing import Union

from finance_tracker.calculation.amounts import round2


GERMAN_MONTHS = [
    "Januar", "Februar", "März", "April", "Mai", "Juni",
    "Juli", "August", "September", "Oktober", "November", "Dezember",
]

CURRENCY_SYMBOL = "€"


def month_name(month: int) -> str:
    """German month name for a 1-based month number."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    return GERMAN_MONTHS[month - 1]


def month_abbreviation(month: int) -> str:
    """First three letters of the German month name ('Okt', 'Mär')."""
    return month_name(month)[:3]


def format_number(amount: Union[Decimal, int, float]) -> str:
    """Format with two decimals, '.' thousands and ',' decimal separator."""
    value = round2(amount)
    # Python's ',' grouping gives 1,234.56; swap the separators
    english = f"{value:,.2f}"
    return english.replace(",", "_").replace(".", ",").replace("_", ".")


def format_currency(amount: Union[Decimal, int, float]) -> str:
    """Always with the euro sign: '1.234,56 €'."""
    return f"{format_number(amount)} {CURRENCY_SYMBOL}"


def format_amount(
    amount: Union[Decimal, int, float],
    show_currency: bool = True,
) -> str:
    """Format an amount according to the user's currency display setting."""
    if show_currency:
        return format_currency(amount)
    return format_number(amount)


def format_date(value: date) -> str:
    """German date format DD.MM.YYYY."""
    return value.strftime("%d.%m.%Y")
