"""Remote cart service data contracts"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .coupon import Coupon

# Debounce/sequence key used for whole-cart mutations
CART_KEY = "__cart__"
COUPON_KEY = "__coupon__"


def _as_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class RemoteCartItem(BaseModel):
    """Item as stored by the remote cart service"""
    product_id: str
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)
    discounted_price: Optional[Decimal] = Field(default=None, ge=0)
    name: Optional[str] = None
    max_quantity: Optional[int] = Field(default=None, ge=1)
    is_available: bool = True
    # Sequence number of the last push the service applied for this item
    sequence: Optional[int] = None


class RemoteCartSnapshot(BaseModel):
    """Authoritative cart contents fetched from the remote service"""
    items: list[RemoteCartItem] = []
    coupon: Optional[Coupon] = None
    updated_at: datetime

    @field_validator("updated_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class MutationKind(str, Enum):
    SET_QUANTITY = "set_quantity"
    REMOVE_ITEM = "remove_item"
    APPLY_COUPON = "apply_coupon"
    REMOVE_COUPON = "remove_coupon"
    CLEAR = "clear"


class CartMutation(BaseModel):
    """
    One local change to push to the remote service.

    Item mutations carry absolute quantities, so replaying one is
    harmless; the service additionally dedupes on mutation_id.
    """
    mutation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: MutationKind
    sequence: int = Field(ge=1)
    modified_at: datetime
    product_id: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    discounted_price: Optional[Decimal] = Field(default=None, ge=0)
    max_quantity: Optional[int] = Field(default=None, ge=1)
    name: Optional[str] = None
    coupon_code: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def key(self) -> str:
        """Coalescing key: mutations sharing a key replace each other"""
        if self.product_id is not None:
            return self.product_id
        if self.kind in (MutationKind.APPLY_COUPON, MutationKind.REMOVE_COUPON):
            return COUPON_KEY
        return CART_KEY


class MutationResult(BaseModel):
    """Acknowledgement from the remote service"""
    mutation_id: str
    applied: bool
    duplicate: bool = False
    stale: bool = False
