# Overview: Fixed-point money helpers shared by every ledger component.

"""
Money representation

USD amounts are integer cents. AFN amounts are integer hundredths of an afghani
("afn cents"). Exchange rates are Decimal AFN-per-USD values with four places.
Conversions round half-up to the nearest minor unit; floats never touch a balance.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

RATE_QUANT = Decimal("0.0001")

# Invoice outstanding below this (0.05 USD) is treated as paid.
OUTSTANDING_DUST_CENTS = 5

# Debt payments within 10 AFN of the remaining balance snap to it.
PAYMENT_TOLERANCE_AFN_CENTS = 1000

# Remaining balance below 1 AFN counts as settled.
SETTLE_THRESHOLD_AFN_CENTS = 100


def to_rate(value) -> Decimal:
    """
    Coerce a user-supplied rate to a positive Decimal with four places.

    Raises ValueError for anything non-numeric or not strictly positive.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("exchange rate must be a number")
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValueError("exchange rate must be a number")
    if not rate.is_finite() or rate <= 0:
        raise ValueError("exchange rate must be greater than zero")
    return rate.quantize(RATE_QUANT, rounding=ROUND_HALF_UP)


def usd_to_afn_cents(usd_cents: int, rate: Decimal) -> int:
    return int((Decimal(usd_cents) * Decimal(rate)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def afn_to_usd_cents(afn_cents: int, rate: Decimal) -> int:
    return int((Decimal(afn_cents) / Decimal(rate)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_rate(rate: Decimal | None) -> str | None:
    """Render a rate without trailing zeros ("70", "70.25")."""
    if rate is None:
        return None
    return format(Decimal(rate).normalize(), "f")
