"""Mock product and coupon catalog"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ...models.coupon import Coupon, CouponKind, normalize_code
from ...models.product import ItemAvailability


class CatalogProduct(BaseModel):
    """Product in the catalog"""
    id: str
    name: str
    unit: str = "each"
    unit_price: Decimal = Field(ge=0)
    discounted_unit_price: Optional[Decimal] = Field(default=None, ge=0)
    stock_quantity: int = Field(ge=0, default=100)
    is_active: bool = True

    @property
    def in_stock(self) -> bool:
        return self.is_active and self.stock_quantity > 0


def seed_products() -> dict[str, CatalogProduct]:
    products = [
        CatalogProduct(id="prod-001", name="Organic Bananas", unit="1 kg", unit_price=Decimal("7.50"), stock_quantity=40),
        CatalogProduct(
            id="prod-002",
            name="Fresh Full Cream Milk",
            unit="2 L",
            unit_price=Decimal("12.00"),
            discounted_unit_price=Decimal("10.50"),
            stock_quantity=25,
        ),
        CatalogProduct(id="prod-003", name="Brown Eggs", unit="30 pcs", unit_price=Decimal("24.75"), stock_quantity=12),
        CatalogProduct(id="prod-004", name="Basmati Rice", unit="5 kg", unit_price=Decimal("42.00"), stock_quantity=8),
        CatalogProduct(id="prod-005", name="Greek Yogurt", unit="500 g", unit_price=Decimal("9.25"), stock_quantity=0),
        CatalogProduct(
            id="prod-006",
            name="Extra Virgin Olive Oil",
            unit="1 L",
            unit_price=Decimal("38.00"),
            stock_quantity=15,
            is_active=False,
        ),
    ]
    return {p.id: p for p in products}


def seed_coupons() -> dict[str, Coupon]:
    coupons = [
        Coupon(code="SAVE20", kind=CouponKind.PERCENTAGE, value=Decimal("20"), max_discount_amount=Decimal("50")),
        Coupon(code="FLAT10", kind=CouponKind.FIXED, value=Decimal("10"), min_order_amount=Decimal("50")),
        Coupon(code="FREEDEL", kind=CouponKind.FREE_DELIVERY, description="Free delivery on any order"),
        Coupon(
            code="RAMADAN24",
            kind=CouponKind.PERCENTAGE,
            value=Decimal("15"),
            valid_until=datetime(2024, 4, 10, tzinfo=timezone.utc),
        ),
    ]
    return {c.code: c for c in coupons}


class CatalogDatabase:
    """In-memory product and coupon catalog"""

    def __init__(self):
        self.products = seed_products()
        self.coupons = seed_coupons()

    def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        """Get a product by ID"""
        return self.products.get(product_id)

    def get_coupon(self, code: str) -> Optional[Coupon]:
        return self.coupons.get(normalize_code(code))

    def availability(self, product_ids: list[str]) -> list[ItemAvailability]:
        """Stock and price for each known product id"""
        results = []
        for product_id in product_ids:
            product = self.get_product(product_id)
            if not product:
                results.append(ItemAvailability(product_id=product_id, is_available=False, max_quantity=0))
                continue
            results.append(
                ItemAvailability(
                    product_id=product.id,
                    is_available=product.in_stock,
                    max_quantity=product.stock_quantity,
                    unit_price=product.unit_price,
                    discounted_unit_price=product.discounted_unit_price,
                )
            )
        return results

    def update_stock(self, product_id: str, quantity: int) -> bool:
        """
        Set product stock.

        Returns:
            True if the product exists
        """
        product = self.products.get(product_id)
        if not product:
            return False
        product.stock_quantity = max(0, quantity)
        return True
