"""
VAT and Amount Calculation

Given a net amount, the VAT mode and the exemption flag, derive the VAT
and the gross total.

RULES:
- VAT-exempt: vat = 0, total = net
- Auto mode: vat = round2(net * rate), total = round2(net + vat)
- Manual mode: vat = the user's figure (0 if absent or invalid),
  total = net + vat

Rounding is half-up to two places and happens after multiplication.
Everything here is pure: identical inputs always give identical outputs.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from finance_tracker.errors import InvalidAmount
from finance_tracker.models.finance import (
    AmountBreakdown,
    Category,
    RawAmount,
    UserSettings,
    VatMode,
)


TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# German standard VAT rate
DEFAULT_VAT_RATE = Decimal("0.19")


def round2(value: Union[Decimal, int, float, str]) -> Decimal:
    """Round a monetary value half-up to two decimal places."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_decimal(raw: RawAmount) -> Optional[Decimal]:
    """Best-effort conversion of form input to Decimal. None if not a number."""
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, float):
        raw = str(raw)

    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
        # German keyboards type a decimal comma
        if "," in raw and "." not in raw:
            raw = raw.replace(",", ".")

    try:
        value = Decimal(raw)
    except (InvalidOperation, ValueError, TypeError):
        return None

    if not value.is_finite():
        return None
    return value


def parse_amount(raw: RawAmount) -> Decimal:
    """
    Parse a net amount from form input.

    Raises:
        InvalidAmount: missing, non-numeric or not positive

    The value is returned unrounded; callers round the stored amount
    and anything derived from it.
    """
    value = to_decimal(raw)

    if value is None:
        raise InvalidAmount(raw)
    if value <= 0:
        raise InvalidAmount(raw, "Amount must be greater than zero")

    return value


def parse_manual_vat(raw: RawAmount) -> Decimal:
    """Parse a manually entered VAT figure. Anything unusable counts as 0."""
    value = to_decimal(raw)
    if value is None or value < 0:
        return ZERO
    return round2(value)


def compute_amounts(
    net_amount: RawAmount,
    mode: VatMode,
    manual_vat: RawAmount = None,
    vat_exempt: bool = False,
    vat_rate: Union[Decimal, float, str] = DEFAULT_VAT_RATE,
) -> AmountBreakdown:
    """
    Compute VAT and gross total for one net amount.

    Args:
        net_amount: Net amount (raw form input or Decimal)
        mode: AUTO applies vat_rate, MANUAL uses manual_vat
        manual_vat: User-supplied VAT, only read in MANUAL mode
        vat_exempt: Forces zero VAT
        vat_rate: Rate applied in AUTO mode

    Returns:
        AmountBreakdown(vat, total)

    Raises:
        InvalidAmount: If net_amount is not a valid positive amount
    """
    net = parse_amount(net_amount)

    if vat_exempt:
        return AmountBreakdown(vat=ZERO, total=round2(net))

    if VatMode(mode) == VatMode.AUTO:
        rate = Decimal(str(vat_rate))
        vat = round2(net * rate)
        return AmountBreakdown(vat=vat, total=round2(net + vat))

    vat = parse_manual_vat(manual_vat)
    return AmountBreakdown(vat=vat, total=round2(net + vat))


class AmountCalculator:
    """
    Derives VAT and totals for transactions.

    The VAT rate is fixed per calculator; user preferences arrive
    with each call so nothing here depends on global state.
    """

    def __init__(self, vat_rate: Union[Decimal, float, str] = DEFAULT_VAT_RATE):
        self._vat_rate = Decimal(str(vat_rate))

    @property
    def vat_rate(self) -> Decimal:
        return self._vat_rate

    def compute(
        self,
        net_amount: RawAmount,
        mode: VatMode,
        manual_vat: RawAmount = None,
        vat_exempt: bool = False,
    ) -> AmountBreakdown:
        """Compute VAT and total at this calculator's rate."""
        return compute_amounts(
            net_amount,
            mode,
            manual_vat=manual_vat,
            vat_exempt=vat_exempt,
            vat_rate=self._vat_rate,
        )

    def compute_for_category(
        self,
        net_amount: RawAmount,
        settings: UserSettings,
        manual_vat: RawAmount = None,
        vat_exempt: bool = False,
        category: Optional[Category] = None,
    ) -> AmountBreakdown:
        """
        Compute amounts for a transaction filed under a category.

        A category with vat_applicable=False makes the transaction
        exempt regardless of the user's VAT mode.
        """
        category_exempt = category is not None and not category.vat_applicable
        return self.compute(
            net_amount,
            settings.vat_mode,
            manual_vat=manual_vat,
            vat_exempt=vat_exempt or category_exempt,
        )
