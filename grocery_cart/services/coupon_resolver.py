"""Coupon catalog collaborators"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional, Protocol

from ..core.session import utcnow
from ..models.coupon import Coupon, normalize_code

logger = logging.getLogger(__name__)


class CouponResolver(Protocol):
    """Looks a coupon code up in some catalog"""

    async def resolve_coupon(self, code: str) -> Optional[Coupon]: ...


class InMemoryCouponCatalog:
    """Coupon catalog held in memory"""

    def __init__(self, coupons: Iterable[Coupon] = ()):
        self.coupons: dict[str, Coupon] = {c.code: c for c in coupons}

    def add(self, coupon: Coupon) -> None:
        self.coupons[coupon.code] = coupon

    def remove(self, code: str) -> bool:
        return self.coupons.pop(normalize_code(code), None) is not None

    async def resolve_coupon(self, code: str) -> Optional[Coupon]:
        return self.coupons.get(normalize_code(code))


class CachedCouponResolver:
    """
    Caches coupon lookups from another resolver.

    Entries live until the coupon's valid_until; misses are not cached so
    a coupon created later is picked up on the next lookup.
    """

    def __init__(
        self,
        upstream: CouponResolver,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._upstream = upstream
        self._clock = clock
        self._cache: dict[str, Coupon] = {}

    def invalidate(self, code: Optional[str] = None) -> None:
        if code is None:
            self._cache.clear()
        else:
            self._cache.pop(normalize_code(code), None)

    async def resolve_coupon(self, code: str) -> Optional[Coupon]:
        code = normalize_code(code)
        cached = self._cache.get(code)
        if cached is not None:
            if not cached.is_expired(self._clock()):
                return cached
            del self._cache[code]

        coupon = await self._upstream.resolve_coupon(code)
        if coupon is not None:
            self._cache[code] = coupon
            logger.debug(f"Cached coupon {code}")
        return coupon
