"""VAT and amount calculation package."""

from finance_tracker.calculation.amounts import (
    DEFAULT_VAT_RATE,
    AmountCalculator,
    compute_amounts,
    parse_amount,
    parse_manual_vat,
    round2,
)

__all__ = [
    "DEFAULT_VAT_RATE",
    "AmountCalculator",
    "compute_amounts",
    "parse_amount",
    "parse_manual_vat",
    "round2",
]
