"""Cart and pricing engine for the grocery delivery storefront"""

from .context import CartContext, build_cart_context
from .core.config import Settings, get_settings
from .models import CartState, Coupon, CouponKind, LineItem, ProductRef, SyncStatus
from .services import CartStore, CartUpdate, SyncReconciler

__version__ = "1.0.0"

__all__ = [
    "CartContext",
    "build_cart_context",
    "Settings",
    "get_settings",
    "CartState",
    "Coupon",
    "CouponKind",
    "LineItem",
    "ProductRef",
    "SyncStatus",
    "CartStore",
    "CartUpdate",
    "SyncReconciler",
]
