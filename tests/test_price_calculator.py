from decimal import Decimal

import pytest

from grocery_cart.core.config import PricingConfig
from grocery_cart.models import LineItem
from grocery_cart.services import price_calculator as pc


def make_item(item_id, unit_price, quantity, discounted=None, available=True, max_quantity=99):
    return LineItem(
        id=item_id,
        product_id=f"p-{item_id}",
        unit_price=Decimal(unit_price),
        discounted_unit_price=Decimal(discounted) if discounted is not None else None,
        quantity=quantity,
        max_quantity=max_quantity,
        is_available=available,
    )


class TestLineTotals:

    def test_line_total_uses_discounted_price(self):
        """Sale price wins over unit price"""
        assert pc.line_total("8.00", 3, "6.50") == Decimal("19.50")
        assert make_item("1", "8.00", 3, discounted="6.50").line_total == Decimal("19.50")

    def test_line_total_rejects_negative_price(self):
        with pytest.raises(ValueError):
            pc.line_total("-1.00", 2)

    def test_display_and_checkout_subtotals(self):
        """Unavailable items count for display but not for checkout"""
        items = [make_item("1", "10.00", 2), make_item("2", "4.25", 4, available=False)]

        assert pc.display_subtotal(items) == Decimal("37.00")
        assert pc.checkout_subtotal(items) == Decimal("20.00")

    def test_item_savings(self):
        items = [make_item("1", "8.00", 2, discounted="6.50"), make_item("2", "3.00", 1)]
        assert pc.item_savings(items) == Decimal("3.00")


class TestDeliveryCharge:

    def test_free_delivery_boundary(self, pricing):
        """Exactly the threshold is free; a cent below is not"""
        assert pc.delivery_charge(Decimal("100.00"), pricing) == Decimal("0.00")
        assert pc.delivery_charge(Decimal("99.99"), pricing) == Decimal("5.00")

    def test_express_above_threshold_charges_the_premium(self, pricing):
        assert pc.delivery_charge(Decimal("150"), pricing, is_express=True) == Decimal("10.00")

    def test_express_below_threshold(self, pricing):
        assert pc.delivery_charge(Decimal("20"), pricing, is_express=True) == Decimal("15.00")

    def test_express_premium_never_negative(self):
        config = PricingConfig(standard_delivery_charge=Decimal("20"), express_delivery_charge=Decimal("15"))
        assert pc.delivery_charge(Decimal("500"), config, is_express=True) == Decimal("0.00")

    def test_free_delivery_coupon_overrides_everything(self, pricing):
        assert pc.delivery_charge(Decimal("5"), pricing, is_express=True, free_delivery=True) == Decimal("0")

    def test_free_delivery_helpers(self, pricing):
        assert pc.amount_for_free_delivery(Decimal("72.50"), pricing) == Decimal("27.50")
        assert pc.amount_for_free_delivery(Decimal("120"), pricing) == Decimal("0.00")
        assert pc.is_eligible_for_free_delivery(Decimal("100"), pricing)
        assert not pc.is_eligible_for_free_delivery(Decimal("99.99"), pricing)


class TestVatAndTotal:

    def test_vat_rounds_half_up(self):
        assert pc.vat(Decimal("0.10"), Decimal("0.05")) == Decimal("0.01")
        assert pc.vat(Decimal("29.00"), Decimal("0.05")) == Decimal("1.45")

    def test_vat_rejects_negative_base(self):
        with pytest.raises(ValueError):
            pc.vat(Decimal("-1"), Decimal("0.05"))

    def test_total_never_negative_from_discount(self):
        assert pc.total(Decimal("10"), Decimal("25"), Decimal("5"), Decimal("0.25")) == Decimal("5.25")

    def test_calculate_breakdown(self, pricing):
        """VAT is charged on the post-discount, post-delivery base"""
        items = [make_item("1", "10.00", 3)]

        breakdown = pc.calculate(items, pricing, discount=Decimal("6.00"))

        assert breakdown.subtotal == Decimal("30.00")
        assert breakdown.discount == Decimal("6.00")
        assert breakdown.delivery_charge == Decimal("5.00")
        assert breakdown.vat_amount == Decimal("1.45")
        assert breakdown.total == Decimal("30.45")

    def test_calculate_clamps_discount_to_subtotal(self, pricing):
        breakdown = pc.calculate([make_item("1", "4.00", 1)], pricing, discount=Decimal("10"))

        assert breakdown.discount == Decimal("4.00")
        assert breakdown.total == breakdown.delivery_charge + breakdown.vat_amount

    def test_calculate_empty_cart_is_all_zero(self, pricing):
        breakdown = pc.calculate([], pricing)
        assert breakdown.total == Decimal("0") and breakdown.delivery_charge == Decimal("0")

    def test_checkout_view_skips_unavailable_items(self, pricing):
        items = [make_item("1", "60.00", 1), make_item("2", "50.00", 1, available=False)]

        display = pc.calculate(items, pricing)
        checkout = pc.calculate(items, pricing, checkout=True)

        assert display.subtotal == Decimal("110.00")
        assert display.delivery_charge == Decimal("0.00")
        assert checkout.subtotal == Decimal("60.00")
        assert checkout.delivery_charge == Decimal("5.00")


class TestFormatting:

    @pytest.mark.parametrize(
        "currency,expected",
        [("AED", "AED 12.50"), ("USD", "$12.50"), ("EUR", "€12.50"), ("INR", "₹12.50"), ("SAR", "SAR 12.50")],
    )
    def test_format_price(self, currency, expected):
        assert pc.format_price(Decimal("12.5"), currency) == expected

    def test_format_price_without_currency(self):
        assert pc.format_price(Decimal("3"), show_currency=False) == "3.00"

    def test_vat_display_text(self):
        assert pc.vat_display_text(Decimal("0.05")) == "VAT (5%)"

    def test_discount_percentage(self):
        assert pc.discount_percentage(Decimal("8.00"), Decimal("6.00")) == 25
        assert pc.discount_percentage(Decimal("0"), Decimal("0")) == 0
