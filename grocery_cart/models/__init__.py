# Cart engine models

from .product import ProductRef, ItemAvailability
from .coupon import Coupon, CouponKind, normalize_code
from .cart import LineItem, CartState, PriceBreakdown, SyncStatus
from .remote import (
    CartMutation,
    MutationKind,
    MutationResult,
    RemoteCartItem,
    RemoteCartSnapshot,
)

__all__ = [
    "ProductRef",
    "ItemAvailability",
    "Coupon",
    "CouponKind",
    "normalize_code",
    "LineItem",
    "CartState",
    "PriceBreakdown",
    "SyncStatus",
    "CartMutation",
    "MutationKind",
    "MutationResult",
    "RemoteCartItem",
    "RemoteCartSnapshot",
]
