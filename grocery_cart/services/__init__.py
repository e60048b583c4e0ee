# Cart engine services

from .cart_store import CartStore, CartUpdate, ItemClock, MergeResult
from .coupon_engine import CouponResult, evaluate as evaluate_coupon
from .coupon_resolver import CachedCouponResolver, CouponResolver, InMemoryCouponCatalog
from .remote_cart_client import RemoteCartClient, RemoteCartService
from .sync_reconciler import CheckoutReadiness, SyncReconciler

__all__ = [
    "CartStore",
    "CartUpdate",
    "ItemClock",
    "MergeResult",
    "CouponResult",
    "evaluate_coupon",
    "CachedCouponResolver",
    "CouponResolver",
    "InMemoryCouponCatalog",
    "RemoteCartClient",
    "RemoteCartService",
    "CheckoutReadiness",
    "SyncReconciler",
]
