"""Remote cart storage"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ...models.coupon import Coupon
from ...models.remote import (
    CartMutation,
    MutationKind,
    MutationResult,
    RemoteCartItem,
    RemoteCartSnapshot,
)
from .catalog import CatalogDatabase

logger = logging.getLogger(__name__)


class MutationRejected(Exception):
    """The mutation cannot be applied (unknown product, no stock, bad coupon)"""

    def __init__(self, message: str, status_code: int = 409):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class StoredCart:
    """A shopper's cart as the service keeps it"""
    user_id: str
    updated_at: datetime
    items: dict[str, RemoteCartItem] = field(default_factory=dict)
    coupon: Optional[Coupon] = None
    # Last applied sequence per product id / coupon / cart key
    sequences: dict[str, int] = field(default_factory=dict)
    # Results of every mutation id seen, for idempotent replays
    results: dict[str, MutationResult] = field(default_factory=dict)

    def snapshot(self) -> RemoteCartSnapshot:
        items = [
            item.model_copy(update={"sequence": self.sequences.get(item.product_id)})
            for item in self.items.values()
        ]
        return RemoteCartSnapshot(items=items, coupon=self.coupon, updated_at=self.updated_at)


class CartDatabase:
    """In-memory cart storage keyed by user id"""

    def __init__(self, catalog: CatalogDatabase):
        self.catalog = catalog
        self.carts: dict[str, StoredCart] = {}

    def get_or_create_cart(self, user_id: str) -> StoredCart:
        """Get existing cart or create new one"""
        cart = self.carts.get(user_id)
        if cart is None:
            cart = StoredCart(user_id=user_id, updated_at=datetime.now(timezone.utc))
            self.carts[user_id] = cart
        return cart

    def apply_mutation(self, user_id: str, mutation: CartMutation) -> MutationResult:
        """
        Apply one client mutation.

        Replays of a known mutation_id return the original result. A
        mutation whose sequence is not greater than the last applied one
        for the same key is acknowledged but ignored.
        """
        cart = self.get_or_create_cart(user_id)

        previous = cart.results.get(mutation.mutation_id)
        if previous is not None:
            return previous.model_copy(update={"duplicate": True})

        key = mutation.key
        if mutation.sequence <= cart.sequences.get(key, 0):
            logger.info(f"Ignoring stale {mutation.kind.value} for {key} (seq {mutation.sequence})")
            result = MutationResult(mutation_id=mutation.mutation_id, applied=False, stale=True)
            cart.results[mutation.mutation_id] = result
            return result

        self._apply(cart, mutation)
        cart.sequences[key] = mutation.sequence
        cart.updated_at = datetime.now(timezone.utc)

        result = MutationResult(mutation_id=mutation.mutation_id, applied=True)
        cart.results[mutation.mutation_id] = result
        return result

    def _apply(self, cart: StoredCart, mutation: CartMutation) -> None:
        if mutation.kind == MutationKind.SET_QUANTITY:
            product = self.catalog.get_product(mutation.product_id)
            if not product or not product.is_active:
                raise MutationRejected(f"Product {mutation.product_id} is no longer available", 404)
            if not product.in_stock or product.stock_quantity < mutation.quantity:
                raise MutationRejected(f"Insufficient stock. Available: {product.stock_quantity}")

            cart.items[product.id] = RemoteCartItem(
                product_id=product.id,
                name=product.name,
                quantity=mutation.quantity,
                unit_price=product.unit_price,
                discounted_price=product.discounted_unit_price,
                max_quantity=max(product.stock_quantity, mutation.quantity),
                is_available=product.in_stock,
            )

        elif mutation.kind == MutationKind.REMOVE_ITEM:
            cart.items.pop(mutation.product_id, None)

        elif mutation.kind == MutationKind.APPLY_COUPON:
            coupon = self.catalog.get_coupon(mutation.coupon_code or "")
            if not coupon:
                raise MutationRejected(f"Coupon {mutation.coupon_code} does not exist", 404)
            cart.coupon = coupon

        elif mutation.kind == MutationKind.REMOVE_COUPON:
            cart.coupon = None

        elif mutation.kind == MutationKind.CLEAR:
            cart.items.clear()

    def delete_cart(self, user_id: str) -> bool:
        """Delete a cart"""
        if user_id in self.carts:
            del self.carts[user_id]
            return True
        return False
