"""
Cart errors and warnings

Business conditions (rejected coupons, clamped quantities, sync
failures) are reported as warning values on the cart's warning stream.
Only the remote collaborator layer raises, and the sync reconciler turns
those exceptions back into warnings.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional


class CouponErrorReason(str, Enum):
    """Why a coupon could not be applied"""
    EMPTY_CODE = "empty_code"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MINIMUM_NOT_MET = "minimum_not_met"


class SyncErrorKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class CartWarning:
    """Base class for everything published on the warning stream"""
    message: str


@dataclass(frozen=True)
class CouponError(CartWarning):
    """Coupon rejected by the coupon engine"""
    reason: CouponErrorReason = CouponErrorReason.NOT_FOUND
    code: str = ""
    # Amount still needed to reach the coupon's minimum order
    shortfall: Optional[Decimal] = None


@dataclass(frozen=True)
class StockLimitExceeded(CartWarning):
    """Requested quantity was clamped to the stock ceiling"""
    item_id: str = ""
    product_id: str = ""
    requested: int = 0
    max_quantity: int = 0


@dataclass(frozen=True)
class CartLimitReached(CartWarning):
    """Too many distinct line items"""
    product_id: str = ""
    max_items: int = 0


@dataclass(frozen=True)
class SyncError(CartWarning):
    """Remote reconciliation failed"""
    kind: SyncErrorKind = SyncErrorKind.TRANSIENT
    product_id: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def is_permanent(self) -> bool:
        return self.kind == SyncErrorKind.PERMANENT


class RemoteCartError(Exception):
    """Base exception for remote cart service errors"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientSyncError(RemoteCartError):
    """Network failure, timeout or server-side error; safe to retry"""
    pass


class PermanentSyncError(RemoteCartError):
    """Request rejected by the remote service; retrying will not help"""
    pass
