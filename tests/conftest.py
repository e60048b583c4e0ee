from datetime import timedelta
from decimal import Decimal

import pytest

from grocery_cart.core.config import Settings
from grocery_cart.core.session import UserSession
from grocery_cart.models import Coupon, CouponKind, ProductRef
from grocery_cart.services import CartStore, InMemoryCouponCatalog

from .fakes import T0, FakeClock, FakeRemoteCart


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        default_currency="AED",
        vat_rate=Decimal("0.05"),
        free_delivery_threshold=Decimal("100"),
        standard_delivery_charge=Decimal("5"),
        express_delivery_charge=Decimal("15"),
        max_cart_items=50,
        keep_coupon_on_clear=False,
        push_debounce_seconds=0.01,
        push_max_attempts=3,
        push_retry_base_delay=0,
        push_retry_max_delay=0,
        checkout_sync_max_age_seconds=300,
    )


@pytest.fixture
def pricing(settings):
    return settings.pricing()


@pytest.fixture
def coupon_catalog():
    return InMemoryCouponCatalog(
        [
            Coupon(code="SAVE20", kind=CouponKind.PERCENTAGE, value=Decimal("20")),
            Coupon(code="FLAT10", kind=CouponKind.FIXED, value=Decimal("10"), min_order_amount=Decimal("50")),
            Coupon(code="FREEDEL", kind=CouponKind.FREE_DELIVERY),
            Coupon(
                code="OLD5",
                kind=CouponKind.FIXED,
                value=Decimal("5"),
                valid_until=T0 - timedelta(days=1),
            ),
        ]
    )


@pytest.fixture
def store(settings, coupon_catalog, clock):
    return CartStore(settings, coupon_resolver=coupon_catalog, clock=clock)


@pytest.fixture
def product_a():
    return ProductRef(id="prod-a", name="Apples", unit_price=Decimal("10.00"), max_quantity=5)


@pytest.fixture
def product_b():
    return ProductRef(
        id="prod-b",
        name="Bread",
        unit_price=Decimal("8.00"),
        discounted_unit_price=Decimal("6.50"),
        max_quantity=10,
    )


@pytest.fixture
def remote():
    return FakeRemoteCart()


@pytest.fixture
def user_session(clock):
    return UserSession(
        session_id="session-1",
        created_at=clock(),
        updated_at=clock(),
        user_id="user-123",
        auth_token="token-abc",
    )
