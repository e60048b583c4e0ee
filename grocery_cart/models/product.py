"""Product reference supplied by the catalog"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class ProductRef(BaseModel):
    """The slice of a catalog product the cart needs at add-time"""
    id: str = Field(min_length=1)
    name: Optional[str] = None
    unit_price: Decimal = Field(ge=0)
    discounted_unit_price: Optional[Decimal] = Field(default=None, ge=0)
    max_quantity: int = Field(ge=1)
    is_available: bool = True

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_discount(self) -> "ProductRef":
        if (
            self.discounted_unit_price is not None
            and self.discounted_unit_price > self.unit_price
        ):
            raise ValueError("discounted_unit_price cannot exceed unit_price")
        return self


class ItemAvailability(BaseModel):
    """Fresh stock and price information for a product already in a cart"""
    product_id: str
    is_available: bool
    max_quantity: int = Field(ge=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    discounted_unit_price: Optional[Decimal] = Field(default=None, ge=0)
