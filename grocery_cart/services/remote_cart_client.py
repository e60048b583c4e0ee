"""
Remote Cart Client

HTTP client for the remote cart service. Classifies failures into
transient (retry) and permanent (surface to the shopper) errors for the
sync reconciler.
"""

import logging
from typing import Any, Optional, Protocol

import httpx
from pydantic import TypeAdapter, ValidationError

from ..core.config import Settings
from ..core.errors import PermanentSyncError, TransientSyncError
from ..models.coupon import Coupon, normalize_code
from ..models.product import ItemAvailability
from ..models.remote import CartMutation, MutationResult, RemoteCartSnapshot

logger = logging.getLogger(__name__)

# Throttling is worth retrying even though it is a 4xx
RETRYABLE_STATUS_CODES = {408, 425, 429}

_availability_list = TypeAdapter(list[ItemAvailability])


class RemoteCartService(Protocol):
    """What the sync reconciler needs from the remote cart"""

    async def fetch_cart(self, user_id: str) -> RemoteCartSnapshot: ...

    async def push_mutation(self, user_id: str, mutation: CartMutation) -> MutationResult: ...


class AvailabilityService(Protocol):
    async def check_availability(self, product_ids: list[str]) -> list[ItemAvailability]: ...


class RemoteCartClient:
    """
    Client for the remote cart service API.

    Usage:
        client = RemoteCartClient.from_settings(settings, auth_token=token)
        snapshot = await client.fetch_cart(user_id)
        await client.push_mutation(user_id, mutation)
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize remote cart client.

        Args:
            base_url: Base URL of the remote cart service
            auth_token: Bearer token of the signed-in shopper
            timeout: Request timeout in seconds
            http_client: Pre-built client (tests pass one with an ASGI transport)
        """
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, auth_token: Optional[str] = None) -> "RemoteCartClient":
        return cls(
            base_url=settings.remote_cart_base_url,
            auth_token=auth_token or settings.remote_auth_token,
            timeout=settings.remote_timeout_seconds,
        )

    async def close(self) -> None:
        """Close HTTP client"""
        await self._http_client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        allow_not_found: bool = False,
    ) -> Optional[Any]:
        """Make an HTTP request, mapping failures to sync errors"""
        url = f"{self.base_url}{path}"

        try:
            response = await self._http_client.request(
                method=method,
                url=url,
                headers=self._headers(),
                json=body,
            )
        except httpx.TransportError as e:
            logger.debug(f"{method} {path} failed: {e!r}")
            raise TransientSyncError(f"Network error talking to cart service: {e}") from e

        if allow_not_found and response.status_code == 404:
            return None

        if response.status_code >= 500 or response.status_code in RETRYABLE_STATUS_CODES:
            logger.error(f"Request failed: {response.status_code} - {response.text}")
            raise TransientSyncError(
                f"Cart service unavailable ({response.status_code})",
                status_code=response.status_code,
            )

        if response.status_code >= 400:
            logger.error(f"Request failed: {response.status_code} - {response.text}")
            raise PermanentSyncError(
                self._error_detail(response),
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{method} {path} returned a non-JSON body: {response.text[:200]}")
            raise PermanentSyncError(
                "Cart service sent an unreadable response",
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _malformed(what: str, error: ValidationError) -> PermanentSyncError:
        logger.error(f"Malformed {what} from cart service: {error.error_count()} error(s)")
        return PermanentSyncError(f"Cart service sent a malformed {what}")

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = None
        return detail or f"Cart service rejected the request ({response.status_code})"

    # ==================== Cart APIs ====================

    async def fetch_cart(self, user_id: str) -> RemoteCartSnapshot:
        """Get the shopper's remote cart"""
        data = await self._request("GET", f"/api/carts/{user_id}")
        try:
            return RemoteCartSnapshot.model_validate(data)
        except ValidationError as e:
            raise self._malformed("cart snapshot", e) from e

    async def push_mutation(self, user_id: str, mutation: CartMutation) -> MutationResult:
        """Send one local change; the service dedupes on mutation_id"""
        data = await self._request(
            "POST",
            f"/api/carts/{user_id}/mutations",
            body=mutation.model_dump(mode="json"),
        )
        try:
            return MutationResult.model_validate(data)
        except ValidationError as e:
            raise self._malformed("mutation result", e) from e

    # ==================== Catalog APIs ====================

    async def resolve_coupon(self, code: str) -> Optional[Coupon]:
        """Look a coupon up; None when the service does not know it"""
        code = normalize_code(code)
        if not code:
            return None
        data = await self._request("GET", f"/api/coupons/{code}", allow_not_found=True)
        if data is None:
            return None
        try:
            return Coupon.model_validate(data)
        except ValidationError as e:
            raise self._malformed("coupon", e) from e

    async def check_availability(self, product_ids: list[str]) -> list[ItemAvailability]:
        """Fresh stock and prices for products in the cart"""
        if not product_ids:
            return []
        data = await self._request(
            "POST",
            "/api/products/availability",
            body={"product_ids": product_ids},
        )
        try:
            return _availability_list.validate_python(data)
        except ValidationError as e:
            raise self._malformed("availability list", e) from e
