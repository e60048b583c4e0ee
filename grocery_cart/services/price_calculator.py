"""
Price Calculator

Pure functions that turn priced line items into subtotal, discount,
delivery charge, VAT and total. No state and no I/O; inputs are assumed
to be validated already, so the only errors raised here are
precondition violations (ValueError).

Rounding is ROUND_HALF_UP to cents on every returned amount.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Protocol

from ..core.config import PricingConfig
from ..core.money import ZERO, Amount, to_money
from ..models.cart import PriceBreakdown


class PricedItem(Protocol):
    unit_price: Decimal
    quantity: int
    is_available: bool

    @property
    def line_total(self) -> Decimal: ...


CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "INR": "₹",
    "GBP": "£",
}


def _require_non_negative(name: str, value: Decimal) -> Decimal:
    if value < 0:
        raise ValueError(f"{name} cannot be negative: {value}")
    return value


def line_total(unit_price: Amount, quantity: int, discounted_unit_price: Optional[Amount] = None) -> Decimal:
    """Price of one line: (discounted price if any, else unit price) x quantity"""
    price = Decimal(str(unit_price)) if discounted_unit_price is None else Decimal(str(discounted_unit_price))
    _require_non_negative("price", price)
    if quantity < 0:
        raise ValueError(f"quantity cannot be negative: {quantity}")
    return to_money(price * quantity)


def display_subtotal(items: Iterable[PricedItem]) -> Decimal:
    """Subtotal of every line, including unavailable ones (what the cart shows)"""
    return to_money(sum((item.line_total for item in items), ZERO))


def checkout_subtotal(items: Iterable[PricedItem]) -> Decimal:
    """Subtotal of the lines that can actually be purchased"""
    return to_money(sum((item.line_total for item in items if item.is_available), ZERO))


def item_savings(items: Iterable[PricedItem]) -> Decimal:
    """Total saved through item-level sale prices versus unit prices"""
    saved = ZERO
    for item in items:
        full_price = to_money(item.unit_price * item.quantity)
        saved += full_price - item.line_total
    return to_money(saved)


def delivery_charge(
    subtotal: Amount,
    config: PricingConfig,
    is_express: bool = False,
    free_delivery: bool = False,
) -> Decimal:
    """
    Delivery charge for a cart subtotal.

    At or above the free-delivery threshold standard delivery is free and
    express delivery costs only its premium over standard. A free-delivery
    coupon forces the charge to zero regardless of subtotal.
    """
    subtotal = _require_non_negative("subtotal", to_money(subtotal))
    if free_delivery:
        return ZERO

    if subtotal >= config.free_delivery_threshold:
        if is_express:
            return to_money(max(ZERO, config.express_delivery_charge - config.standard_delivery_charge))
        return ZERO

    if is_express:
        return to_money(config.express_delivery_charge)
    return to_money(config.standard_delivery_charge)


def vat(amount_base: Amount, vat_rate: Amount) -> Decimal:
    """VAT on a base amount (post-discount, post-delivery)"""
    base = _require_non_negative("VAT base", Decimal(str(amount_base)))
    rate = _require_non_negative("VAT rate", Decimal(str(vat_rate)))
    return to_money(base * rate)


def total(subtotal: Amount, discount: Amount, delivery: Amount, vat_amount: Amount) -> Decimal:
    """max(0, subtotal - discount) + delivery + VAT"""
    discounted = max(ZERO, to_money(subtotal) - to_money(discount))
    return to_money(discounted + to_money(delivery) + to_money(vat_amount))


def calculate(
    items: Iterable[PricedItem],
    config: PricingConfig,
    discount: Amount = ZERO,
    is_express: bool = False,
    free_delivery: bool = False,
    checkout: bool = False,
) -> PriceBreakdown:
    """
    Full price breakdown.

    Args:
        items: Priced line items
        config: Pricing configuration
        discount: Coupon discount on the subtotal
        is_express: Express instead of standard delivery
        free_delivery: A free-delivery coupon is active
        checkout: Price only available items (checkout view)

    Returns:
        PriceBreakdown; all zero when there is nothing to price
    """
    items = [item for item in items if item.is_available] if checkout else list(items)
    if not items:
        return PriceBreakdown()

    subtotal = display_subtotal(items)
    discount = min(_require_non_negative("discount", to_money(discount)), subtotal)
    delivery = delivery_charge(subtotal, config, is_express=is_express, free_delivery=free_delivery)
    vat_amount = vat(subtotal - discount + delivery, config.vat_rate)

    return PriceBreakdown(
        subtotal=subtotal,
        discount=discount,
        delivery_charge=delivery,
        vat_amount=vat_amount,
        total=total(subtotal, discount, delivery, vat_amount),
    )


def amount_for_free_delivery(subtotal: Amount, config: PricingConfig) -> Decimal:
    """How much more the shopper must add to qualify for free delivery"""
    remaining = config.free_delivery_threshold - to_money(subtotal)
    return to_money(max(ZERO, remaining))


def is_eligible_for_free_delivery(subtotal: Amount, config: PricingConfig) -> bool:
    return to_money(subtotal) >= config.free_delivery_threshold


def discount_percentage(original_price: Amount, discounted_price: Amount) -> int:
    """Whole-number percentage saved, for sale badges"""
    original = Decimal(str(original_price))
    if original <= 0:
        return 0
    saved = (original - Decimal(str(discounted_price))) / original * 100
    return int(saved.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_price(amount: Amount, currency: str = "AED", show_currency: bool = True) -> str:
    """Format an amount for display, e.g. 'AED 12.50' or '$12.50'"""
    formatted = f"{to_money(amount):.2f}"
    if not show_currency:
        return formatted

    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{symbol}{formatted}"
    return f"{currency} {formatted}"


def vat_display_text(vat_rate: Amount) -> str:
    percent = (Decimal(str(vat_rate)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"VAT ({percent}%)"
