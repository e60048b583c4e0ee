"""Cart models"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from ..core.money import ZERO, to_money
from .coupon import Coupon


class SyncStatus(str, Enum):
    """Remote reconciliation status of the cart"""
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


class LineItem(BaseModel):
    """
    One product entry in the cart.

    Items are immutable; every change goes through with_changes() so
    line_total is always derived from the current price and quantity.
    """
    id: str
    product_id: str
    name: Optional[str] = None
    unit_price: Decimal = Field(ge=0)
    discounted_unit_price: Optional[Decimal] = Field(default=None, ge=0)
    quantity: int = Field(ge=1)
    max_quantity: int = Field(ge=1)
    is_available: bool = True
    # Set when the remote service permanently rejected a change to this item
    sync_warning: Optional[str] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_invariants(self) -> "LineItem":
        if (
            self.discounted_unit_price is not None
            and self.discounted_unit_price > self.unit_price
        ):
            raise ValueError("discounted_unit_price cannot exceed unit_price")
        if self.quantity > self.max_quantity:
            raise ValueError(
                f"quantity {self.quantity} exceeds max_quantity {self.max_quantity}"
            )
        return self

    @property
    def effective_unit_price(self) -> Decimal:
        if self.discounted_unit_price is not None:
            return self.discounted_unit_price
        return self.unit_price

    @computed_field
    @property
    def line_total(self) -> Decimal:
        return to_money(self.effective_unit_price * self.quantity)

    def with_changes(self, **changes: Any) -> "LineItem":
        """Return a validated copy with the given fields replaced"""
        data = self.model_dump(exclude={"line_total"})
        data.update(changes)
        return LineItem.model_validate(data)


class PriceBreakdown(BaseModel):
    """Derived monetary totals for a set of line items"""
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    delivery_charge: Decimal = ZERO
    vat_amount: Decimal = ZERO
    total: Decimal = ZERO

    model_config = {"frozen": True}


class CartState(BaseModel):
    """Read-only snapshot of the cart published after every mutation"""
    items: list[LineItem] = []
    applied_coupon: Optional[Coupon] = None
    # Why the applied coupon currently yields no discount, if it doesn't
    coupon_warning: Optional[str] = None
    free_delivery: bool = False
    is_express_delivery: bool = False
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    delivery_charge: Decimal = ZERO
    vat_amount: Decimal = ZERO
    total: Decimal = ZERO
    item_count: int = 0
    currency: str = "AED"
    sync_status: SyncStatus = SyncStatus.IDLE
    last_synced_at: Optional[datetime] = None

    model_config = {"frozen": True}

    def get_item(self, item_id: str) -> Optional[LineItem]:
        return next((item for item in self.items if item.id == item_id), None)

    def find_product(self, product_id: str) -> Optional[LineItem]:
        return next((item for item in self.items if item.product_id == product_id), None)

    @property
    def is_empty(self) -> bool:
        return not self.items
