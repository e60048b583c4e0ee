from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from grocery_cart.core.errors import CouponErrorReason
from grocery_cart.models import Coupon, CouponKind
from grocery_cart.services.coupon_engine import compute_discount, evaluate

NOW = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)

SAVE20 = Coupon(code="SAVE20", kind=CouponKind.PERCENTAGE, value=Decimal("20"))
CAPPED = Coupon(
    code="HALF", kind=CouponKind.PERCENTAGE, value=Decimal("50"), max_discount_amount=Decimal("15")
)
FLAT10 = Coupon(code="FLAT10", kind=CouponKind.FIXED, value=Decimal("10"), min_order_amount=Decimal("50"))
FREEDEL = Coupon(code="FREEDEL", kind=CouponKind.FREE_DELIVERY)


class TestCouponValidation:

    @pytest.mark.parametrize("code", ["", "   ", None])
    def test_empty_code(self, code):
        result = evaluate(code, Decimal("30"), SAVE20, now=NOW)

        assert not result.ok
        assert result.error.reason == CouponErrorReason.EMPTY_CODE

    def test_unknown_coupon(self):
        result = evaluate("NOPE", Decimal("30"), None, now=NOW)

        assert result.error.reason == CouponErrorReason.NOT_FOUND
        assert result.error.code == "NOPE"

    def test_definition_for_another_code_is_not_found(self):
        result = evaluate("SAVE30", Decimal("30"), SAVE20, now=NOW)
        assert result.error.reason == CouponErrorReason.NOT_FOUND

    def test_expired(self):
        expired = Coupon(
            code="OLD", kind=CouponKind.FIXED, value=Decimal("5"), valid_until=NOW - timedelta(seconds=1)
        )

        result = evaluate("old", Decimal("30"), expired, now=NOW)

        assert result.error.reason == CouponErrorReason.EXPIRED

    def test_minimum_not_met_reports_shortfall(self):
        """A cent below the minimum is rejected with the missing amount"""
        result = evaluate("FLAT10", Decimal("49.99"), FLAT10, now=NOW)

        assert result.error.reason == CouponErrorReason.MINIMUM_NOT_MET
        assert result.error.shortfall == Decimal("0.01")
        assert "0.01" in result.error.message

    def test_minimum_exactly_met(self):
        result = evaluate("FLAT10", Decimal("50.00"), FLAT10, now=NOW)

        assert result.ok
        assert result.discount == Decimal("10.00")

    def test_code_is_normalized(self):
        result = evaluate("  save20 ", Decimal("30"), SAVE20, now=NOW)

        assert result.ok
        assert result.code == "SAVE20"


class TestDiscounts:

    def test_percentage(self):
        assert evaluate("SAVE20", Decimal("30.00"), SAVE20, now=NOW).discount == Decimal("6.00")

    def test_percentage_respects_cap(self):
        assert compute_discount(CAPPED, Decimal("100")) == Decimal("15.00")
        assert compute_discount(CAPPED, Decimal("20")) == Decimal("10.00")

    def test_fixed_discount_never_exceeds_subtotal(self):
        fixed = Coupon(code="BIG", kind=CouponKind.FIXED, value=Decimal("25"))
        assert compute_discount(fixed, Decimal("12.40")) == Decimal("12.40")

    def test_free_delivery_coupon(self):
        result = evaluate("FREEDEL", Decimal("12"), FREEDEL, now=NOW)

        assert result.ok
        assert result.discount == Decimal("0.00")
        assert result.free_delivery


class TestCouponModel:

    def test_percentage_over_hundred_rejected(self):
        with pytest.raises(ValidationError):
            Coupon(code="TOO", kind=CouponKind.PERCENTAGE, value=Decimal("120"))

    def test_code_stored_uppercase(self):
        assert Coupon(code=" mixed ", kind=CouponKind.FIXED, value=Decimal("1")).code == "MIXED"

    def test_naive_expiry_treated_as_utc(self):
        coupon = Coupon(code="X", kind=CouponKind.FIXED, valid_until=datetime(2026, 1, 1))
        assert coupon.valid_until.tzinfo == timezone.utc
        assert coupon.is_expired(NOW)
