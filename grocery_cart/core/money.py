"""
Monetary rounding.

All amounts are Decimals rounded to two places with ROUND_HALF_UP. Every
step of the subtotal -> discount -> VAT -> total chain rounds through
to_money so no drift accumulates between steps.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Amount = Union[Decimal, int, float, str]


def to_money(value: Amount) -> Decimal:
    """Convert to a Decimal rounded half-up to cents"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
