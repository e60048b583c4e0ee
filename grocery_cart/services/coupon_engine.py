"""
Coupon Engine

Decides whether a resolved coupon applies to a cart subtotal and how
much it takes off. The engine never looks coupons up itself; callers
pass in whatever their coupon resolver returned.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from ..core.errors import CouponError, CouponErrorReason
from ..core.money import ZERO, Amount, to_money
from ..core.session import utcnow
from ..models.coupon import Coupon, CouponKind, normalize_code

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponResult:
    """Outcome of evaluating a coupon against a subtotal"""
    code: str
    coupon: Optional[Coupon] = None
    discount: Decimal = ZERO
    # Free-delivery coupons zero the delivery charge instead of the subtotal
    free_delivery: bool = False
    error: Optional[CouponError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _reject(code: str, reason: CouponErrorReason, message: str, **extra) -> CouponResult:
    logger.debug(f"Coupon {code!r} rejected: {reason.value}")
    return CouponResult(
        code=code,
        error=CouponError(message=message, reason=reason, code=code, **extra),
    )


def compute_discount(coupon: Coupon, cart_subtotal: Amount) -> Decimal:
    """Raw discount for an applicable coupon, capped so it never exceeds the subtotal"""
    subtotal = to_money(cart_subtotal)

    if coupon.kind == CouponKind.PERCENTAGE:
        discount = subtotal * coupon.value / 100
        if coupon.max_discount_amount is not None:
            discount = min(discount, coupon.max_discount_amount)
    elif coupon.kind == CouponKind.FIXED:
        discount = coupon.value
    else:
        discount = ZERO

    return to_money(min(to_money(discount), subtotal))


def evaluate(
    code: Optional[str],
    cart_subtotal: Amount,
    coupon: Optional[Coupon],
    now: Optional[datetime] = None,
) -> CouponResult:
    """
    Evaluate a coupon code.

    Args:
        code: Code as typed by the shopper
        cart_subtotal: Subtotal the discount is computed from
        coupon: Definition returned by the coupon resolver, None if unknown
        now: Evaluation instant (defaults to current UTC time)

    Returns:
        CouponResult carrying either the discount or a CouponError
    """
    normalized = normalize_code(code)
    if not normalized:
        return _reject(normalized, CouponErrorReason.EMPTY_CODE, "Please enter a coupon code")

    if coupon is None or coupon.code != normalized:
        return _reject(normalized, CouponErrorReason.NOT_FOUND, f"Coupon {normalized} does not exist")

    now = now or utcnow()
    if coupon.is_expired(now):
        return _reject(normalized, CouponErrorReason.EXPIRED, f"Coupon {normalized} has expired")

    subtotal = to_money(cart_subtotal)
    if coupon.min_order_amount is not None and subtotal < coupon.min_order_amount:
        shortfall = to_money(coupon.min_order_amount - subtotal)
        return _reject(
            normalized,
            CouponErrorReason.MINIMUM_NOT_MET,
            f"Add {shortfall} more to use coupon {normalized}",
            shortfall=shortfall,
        )

    return CouponResult(
        code=normalized,
        coupon=coupon,
        discount=compute_discount(coupon, subtotal),
        free_delivery=coupon.grants_free_delivery,
    )
