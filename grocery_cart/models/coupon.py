"""Coupon definitions"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def normalize_code(code: Optional[str]) -> str:
    """Trim and uppercase a coupon code as typed by the user"""
    return (code or "").strip().upper()


class CouponKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_DELIVERY = "free_delivery"


class Coupon(BaseModel):
    """A whole-cart discount rule"""
    code: str = Field(min_length=1)
    kind: CouponKind
    # Percent (0-100) for percentage coupons, an amount for fixed ones
    value: Decimal = Field(default=Decimal("0"), ge=0)
    min_order_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    valid_until: Optional[datetime] = None
    description: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("code")
    @classmethod
    def uppercase_code(cls, v: str) -> str:
        code = normalize_code(v)
        if not code:
            raise ValueError("coupon code cannot be blank")
        return code

    @field_validator("valid_until")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def check_percentage(self) -> "Coupon":
        if self.kind == CouponKind.PERCENTAGE and self.value > 100:
            raise ValueError("percentage coupons take a value between 0 and 100")
        return self

    def is_expired(self, now: datetime) -> bool:
        return self.valid_until is not None and self.valid_until < now

    @property
    def grants_free_delivery(self) -> bool:
        return self.kind == CouponKind.FREE_DELIVERY
