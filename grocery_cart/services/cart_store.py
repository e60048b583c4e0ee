"""
Cart Store

The single owner of a session's cart. Every command applies its change
locally, recomputes the derived totals, publishes a fresh read-only
CartState to subscribers and returns it in a CartUpdate together with
any warnings. Business problems (clamped quantities, rejected coupons)
are warnings, never exceptions.

Each product, the coupon slot and the cart as a whole carry an
ItemClock: a local sequence number plus the time of the last local
change. The sync reconciler uses these to push changes and to merge
remote snapshots without letting stale data win.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Protocol, Union

from ..core.config import PricingConfig, Settings, get_settings
from ..core.errors import (
    CartLimitReached,
    CartWarning,
    CouponError,
    CouponErrorReason,
    StockLimitExceeded,
)
from ..core.money import ZERO
from ..core.session import utcnow
from ..models.cart import CartState, LineItem, PriceBreakdown, SyncStatus
from ..models.coupon import Coupon, normalize_code
from ..models.product import ItemAvailability, ProductRef
from ..models.remote import (
    CART_KEY,
    COUPON_KEY,
    CartMutation,
    MutationKind,
    RemoteCartSnapshot,
)
from . import coupon_engine, price_calculator
from .coupon_resolver import CouponResolver

logger = logging.getLogger(__name__)

StateListener = Callable[[CartState], None]
WarningListener = Callable[[CartWarning], None]
MutationListener = Callable[[CartMutation], None]

SYNC_TRANSITIONS = {
    SyncStatus.IDLE: {SyncStatus.SYNCING},
    SyncStatus.SYNCING: {SyncStatus.IDLE, SyncStatus.ERROR},
    SyncStatus.ERROR: {SyncStatus.SYNCING},
}


@dataclass
class ItemClock:
    """Local change clock for one product (or the coupon/cart slot)"""
    sequence: int = 0
    last_modified_at: Optional[datetime] = None
    # Highest sequence the remote service is known to have applied
    acknowledged: int = 0

    @property
    def has_unpushed_changes(self) -> bool:
        return self.sequence > self.acknowledged


@dataclass(frozen=True)
class CartUpdate:
    """Result of a cart command"""
    state: CartState
    warnings: list[CartWarning] = field(default_factory=list)

    @property
    def coupon_error(self) -> Optional[CouponError]:
        return next((w for w in self.warnings if isinstance(w, CouponError)), None)

    @property
    def ok(self) -> bool:
        return not self.warnings


@dataclass(frozen=True)
class MergeResult:
    """What a remote snapshot merge changed"""
    update: CartUpdate
    # Products (or the coupon slot) where the local value was kept
    local_wins: list[str] = field(default_factory=list)
    remote_wins: list[str] = field(default_factory=list)


class Synchronizer(Protocol):
    async def sync(self) -> CartUpdate: ...


class CartStore:
    """
    In-memory cart for one session.

    Not safe for concurrent mutation from several threads; all commands
    are expected to run on one event loop, which serialises them.

    Usage:
        store = CartStore(settings, coupon_resolver=catalog)
        store.subscribe(render)

        store.add_item(product, quantity=2)
        update = await store.apply_coupon("save20")
        if update.coupon_error:
            show(update.coupon_error.message)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        coupon_resolver: Optional[CouponResolver] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        settings = settings or get_settings()
        self._pricing = settings.pricing()
        self._max_items = settings.max_cart_items
        self._keep_coupon_on_clear = settings.keep_coupon_on_clear
        self._resolver = coupon_resolver
        self._clock = clock
        self._new_id = id_factory

        self._items: list[LineItem] = []
        self._coupon: Optional[Coupon] = None
        self._express = False
        self._sync_status = SyncStatus.IDLE
        self._last_synced_at: Optional[datetime] = None
        self._clocks: dict[str, ItemClock] = {}

        self._state_listeners: list[StateListener] = []
        self._warning_listeners: list[WarningListener] = []
        self._mutation_listeners: list[MutationListener] = []
        self._synchronizer: Optional[Synchronizer] = None

        self._state = self._build_state()

    # ==================== Queries & subscriptions ====================

    @property
    def state(self) -> CartState:
        """Current read-only snapshot"""
        return self._state

    @property
    def pricing(self) -> PricingConfig:
        return self._pricing

    def clock_for(self, key: str) -> ItemClock:
        """Change clock for a product id, COUPON_KEY or CART_KEY"""
        return self._clocks.setdefault(key, ItemClock())

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call listener with the new state after every change"""
        return self._add_listener(self._state_listeners, listener)

    def subscribe_warnings(self, listener: WarningListener) -> Callable[[], None]:
        """Call listener for every warning or error the cart surfaces"""
        return self._add_listener(self._warning_listeners, listener)

    def subscribe_mutations(self, listener: MutationListener) -> Callable[[], None]:
        """Call listener with every local change that should reach the remote cart"""
        return self._add_listener(self._mutation_listeners, listener)

    def attach_synchronizer(self, synchronizer: Optional[Synchronizer]) -> None:
        self._synchronizer = synchronizer

    @staticmethod
    def _add_listener(listeners: list, listener: Callable) -> Callable[[], None]:
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    # ==================== Commands ====================

    def add_item(self, product: Union[ProductRef, dict], quantity: int = 1) -> CartUpdate:
        """Add a product, or increase its quantity if it is already in the cart"""
        product = ProductRef.model_validate(product)
        if quantity < 1:
            raise ValueError(f"quantity must be at least 1, got {quantity}")

        warnings: list[CartWarning] = []
        existing = self._find_product(product.id)

        if existing is None:
            if len(self._items) >= self._max_items:
                warning = CartLimitReached(
                    message=f"Your cart can hold at most {self._max_items} different products",
                    product_id=product.id,
                    max_items=self._max_items,
                )
                return self._reject(warning)

            new_quantity = min(quantity, product.max_quantity)
            if new_quantity < quantity:
                warnings.append(self._stock_warning(None, product.id, quantity, product.max_quantity))

            item = LineItem(
                id=self._new_id(),
                product_id=product.id,
                name=product.name,
                unit_price=product.unit_price,
                discounted_unit_price=product.discounted_unit_price,
                quantity=new_quantity,
                max_quantity=product.max_quantity,
                is_available=product.is_available,
            )
            self._items.append(item)
        else:
            requested = existing.quantity + quantity
            new_quantity = min(requested, product.max_quantity)
            if new_quantity < requested:
                warnings.append(
                    self._stock_warning(existing.id, product.id, requested, product.max_quantity)
                )
            if (
                new_quantity == existing.quantity
                and product.max_quantity == existing.max_quantity
                and product.is_available == existing.is_available
            ):
                return self._reject(*warnings)

            item = existing.with_changes(
                quantity=new_quantity,
                max_quantity=product.max_quantity,
                is_available=product.is_available,
            )
            self._replace(item)

        self._emit_item(item, MutationKind.SET_QUANTITY)
        return self._commit(warnings)

    def remove_item(self, item_id: str) -> CartUpdate:
        """Remove a line item; removing an unknown id is a no-op"""
        item = self._get(item_id)
        if item is None:
            return CartUpdate(state=self._state)

        self._items = [i for i in self._items if i.id != item_id]
        self._emit_item(item, MutationKind.REMOVE_ITEM)
        return self._commit()

    def set_quantity(self, item_id: str, quantity: int) -> CartUpdate:
        """Set a line's quantity; zero or less removes it"""
        if quantity <= 0:
            return self.remove_item(item_id)

        item = self._get(item_id)
        if item is None:
            return CartUpdate(state=self._state)

        warnings: list[CartWarning] = []
        new_quantity = min(quantity, item.max_quantity)
        if new_quantity < quantity:
            warnings.append(self._stock_warning(item.id, item.product_id, quantity, item.max_quantity))
        if new_quantity == item.quantity:
            return self._reject(*warnings)

        item = item.with_changes(quantity=new_quantity)
        self._replace(item)
        self._emit_item(item, MutationKind.SET_QUANTITY)
        return self._commit(warnings)

    async def apply_coupon(self, code: str) -> CartUpdate:
        """Resolve a coupon code and apply it, replacing any applied coupon"""
        normalized = normalize_code(code)
        coupon = None
        if normalized and self._resolver is not None:
            coupon = await self._resolver.resolve_coupon(normalized)
        return self.apply_resolved_coupon(normalized, coupon)

    def apply_resolved_coupon(self, code: str, coupon: Optional[Coupon]) -> CartUpdate:
        """Apply a coupon already looked up by the caller"""
        result = coupon_engine.evaluate(code, self._state.subtotal, coupon, now=self._clock())
        if not result.ok:
            logger.warning(f"Coupon {result.code!r} rejected: {result.error.reason.value}")
            return self._reject(result.error)

        self._coupon = result.coupon
        self._emit(
            MutationKind.APPLY_COUPON,
            COUPON_KEY,
            coupon_code=result.coupon.code,
        )
        return self._commit()

    def remove_coupon(self) -> CartUpdate:
        """Drop the applied coupon; a no-op when none is applied"""
        if self._coupon is None:
            return CartUpdate(state=self._state)

        code = self._coupon.code
        self._coupon = None
        self._emit(MutationKind.REMOVE_COUPON, COUPON_KEY, coupon_code=code)
        return self._commit()

    def clear(self) -> CartUpdate:
        """Empty the cart and drop the coupon (kept when keep_coupon_on_clear is set)"""
        for item in self._items:
            self._touch(item.product_id)
        self._items = []
        if not self._keep_coupon_on_clear and self._coupon is not None:
            code = self._coupon.code
            self._coupon = None
            self._emit(MutationKind.REMOVE_COUPON, COUPON_KEY, coupon_code=code)

        self._emit(MutationKind.CLEAR, CART_KEY)
        return self._commit()

    def set_express_delivery(self, is_express: bool) -> CartUpdate:
        if is_express == self._express:
            return CartUpdate(state=self._state)
        self._express = is_express
        return self._commit()

    async def sync(self) -> CartUpdate:
        """Reconcile with the remote cart if a synchronizer is attached"""
        if self._synchronizer is None:
            return CartUpdate(state=self._state)
        return await self._synchronizer.sync()

    def reset(self) -> CartUpdate:
        """Forget everything, coupon and change clocks included (used on logout)"""
        self._items = []
        self._coupon = None
        self._express = False
        self._clocks = {}
        self._sync_status = SyncStatus.IDLE
        self._last_synced_at = None
        return self._commit()

    # ==================== Availability & coupon refresh ====================

    def refresh_availability(
        self,
        availability: Iterable[Union[ItemAvailability, dict]],
    ) -> CartUpdate:
        """
        Apply fresh stock and price data from the catalog.

        Unavailable items are flagged, never removed; quantities above a
        lowered stock ceiling are clamped with a warning.
        """
        warnings: list[CartWarning] = []
        changed = False

        for entry in availability:
            entry = ItemAvailability.model_validate(entry)
            item = self._find_product(entry.product_id)
            if item is None:
                continue

            changes: dict[str, Any] = {"is_available": entry.is_available and entry.max_quantity > 0}
            if entry.max_quantity > 0:
                changes["max_quantity"] = entry.max_quantity
                if item.quantity > entry.max_quantity:
                    changes["quantity"] = entry.max_quantity
                    warnings.append(
                        self._stock_warning(item.id, item.product_id, item.quantity, entry.max_quantity)
                    )
            if entry.unit_price is not None:
                changes["unit_price"] = entry.unit_price
                changes["discounted_unit_price"] = entry.discounted_unit_price

            updated = item.with_changes(**changes)
            if updated != item:
                self._replace(updated)
                changed = True

        if not changed:
            return self._reject(*warnings)
        return self._commit(warnings)

    async def refresh_coupon(self) -> Optional[CouponError]:
        """
        Re-resolve the applied coupon, skipping any resolver cache.

        A coupon that no longer exists stays applied (the shopper has to
        remove it) and a NOT_FOUND error is published.
        """
        if self._coupon is None or self._resolver is None:
            return None

        invalidate = getattr(self._resolver, "invalidate", None)
        if invalidate is not None:
            invalidate(self._coupon.code)

        coupon = await self._resolver.resolve_coupon(self._coupon.code)
        if coupon is None:
            error = CouponError(
                message=f"Coupon {self._coupon.code} is no longer available",
                reason=CouponErrorReason.NOT_FOUND,
                code=self._coupon.code,
            )
            self._publish_warnings([error])
            return error

        if coupon != self._coupon:
            self._coupon = coupon
            self._commit()
        return None

    def checkout_breakdown(
        self,
        coupon_error: Optional[CouponError] = None,
    ) -> tuple[PriceBreakdown, Optional[CouponError]]:
        """
        Totals for the available items only, with the coupon re-evaluated against them.

        Pass the error from refresh_coupon() to price the cart without a
        coupon that is no longer honoured.
        """
        available = [item for item in self._items if item.is_available]
        discount, free_delivery, error = ZERO, False, coupon_error

        if self._coupon is not None and coupon_error is None:
            subtotal = price_calculator.checkout_subtotal(available)
            result = coupon_engine.evaluate(self._coupon.code, subtotal, self._coupon, now=self._clock())
            if result.ok:
                discount, free_delivery = result.discount, result.free_delivery
            else:
                error = result.error

        breakdown = price_calculator.calculate(
            available,
            self._pricing,
            discount=discount,
            is_express=self._express,
            free_delivery=free_delivery,
            checkout=True,
        )
        return breakdown, error

    # ==================== Sync support ====================

    def begin_sync(self) -> None:
        self._transition(SyncStatus.SYNCING)

    def finish_sync(self, success: bool, synced_at: Optional[datetime] = None) -> None:
        if success:
            self._last_synced_at = synced_at or self._clock()
            self._transition(SyncStatus.IDLE)
        else:
            self._transition(SyncStatus.ERROR)

    def abandon_sync(self) -> None:
        """Drop a sync that will never finish (its session ended)"""
        if self._sync_status == SyncStatus.SYNCING:
            self._sync_status = SyncStatus.IDLE
            self._commit()

    def _transition(self, status: SyncStatus) -> None:
        if status not in SYNC_TRANSITIONS[self._sync_status]:
            raise ValueError(f"Illegal sync status transition {self._sync_status.value} -> {status.value}")
        self._sync_status = status
        self._commit()

    def acknowledge(self, mutation: CartMutation) -> None:
        """Record that the remote service applied a mutation"""
        clock = self.clock_for(mutation.key)
        clock.acknowledged = max(clock.acknowledged, mutation.sequence)

        if mutation.kind == MutationKind.CLEAR:
            # The clear also covers the items it removed, unless they were re-added since
            for key, item_clock in self._clocks.items():
                if key in (CART_KEY, COUPON_KEY) or self._find_product(key) is not None:
                    continue
                if item_clock.last_modified_at is None or item_clock.last_modified_at <= mutation.modified_at:
                    item_clock.acknowledged = item_clock.sequence

        if mutation.product_id is not None:
            item = self._find_product(mutation.product_id)
            if item is not None and item.sync_warning is not None:
                self._replace(item.with_changes(sync_warning=None))
                self._commit()

    def flag_item(self, product_id: str, message: str) -> None:
        """Attach a sync warning to an item without touching its quantity"""
        item = self._find_product(product_id)
        if item is not None:
            self._replace(item.with_changes(sync_warning=message))
            self._commit()

    def report_warning(self, warning: CartWarning) -> None:
        self._publish_warnings([warning])

    def current_mutation(self, key: str) -> CartMutation:
        """Mutation describing the current local value for a key, for re-pushing"""
        clock = self.clock_for(key)
        if clock.sequence == 0:
            clock.sequence = 1
            clock.last_modified_at = self._clock()
        modified_at = clock.last_modified_at or self._clock()

        if key == COUPON_KEY:
            if self._coupon is None:
                return CartMutation(kind=MutationKind.REMOVE_COUPON, sequence=clock.sequence, modified_at=modified_at)
            return CartMutation(
                kind=MutationKind.APPLY_COUPON,
                sequence=clock.sequence,
                modified_at=modified_at,
                coupon_code=self._coupon.code,
            )

        item = self._find_product(key)
        if item is None:
            return CartMutation(
                kind=MutationKind.REMOVE_ITEM,
                sequence=clock.sequence,
                modified_at=modified_at,
                product_id=key,
            )
        return self._item_mutation(item, MutationKind.SET_QUANTITY, clock)

    def merge_remote(self, snapshot: Union[RemoteCartSnapshot, dict]) -> MergeResult:
        """
        Merge an authoritative remote snapshot, last write wins per product.

        A local value wins when it changed after the snapshot was taken or
        when the snapshot's sequence for it is behind the local one. Local
        items missing from the snapshot are kept unless the service had
        already acknowledged them and nothing changed locally since.
        """
        snapshot = RemoteCartSnapshot.model_validate(snapshot)
        warnings: list[CartWarning] = []
        local_wins: list[str] = []
        remote_wins: list[str] = []
        remote_ids = set()

        for remote in snapshot.items:
            remote_ids.add(remote.product_id)
            clock = self.clock_for(remote.product_id)

            if self._local_wins(clock, remote.sequence, snapshot.updated_at):
                if remote.sequence is not None and remote.sequence >= clock.sequence:
                    clock.sequence = remote.sequence + 1
                local_wins.append(remote.product_id)
                continue

            if remote.sequence is not None:
                clock.sequence = max(clock.sequence, remote.sequence)
            clock.acknowledged = clock.sequence

            local = self._find_product(remote.product_id)
            max_quantity = remote.max_quantity or (local.max_quantity if local else remote.quantity)
            quantity = min(remote.quantity, max_quantity)
            if quantity < remote.quantity:
                warnings.append(
                    self._stock_warning(local.id if local else None, remote.product_id, remote.quantity, max_quantity)
                )

            fields = dict(
                quantity=quantity,
                max_quantity=max_quantity,
                unit_price=remote.unit_price,
                discounted_unit_price=remote.discounted_price,
                is_available=remote.is_available,
            )
            if local is None:
                self._items.append(
                    LineItem(id=self._new_id(), product_id=remote.product_id, name=remote.name, **fields)
                )
            else:
                self._replace(local.with_changes(**fields))
            remote_wins.append(remote.product_id)

        for item in list(self._items):
            if item.product_id in remote_ids:
                continue
            clock = self.clock_for(item.product_id)
            if clock.has_unpushed_changes or self._local_wins(clock, None, snapshot.updated_at):
                local_wins.append(item.product_id)
            else:
                self._items = [i for i in self._items if i.id != item.id]
                remote_wins.append(item.product_id)

        coupon_clock = self.clock_for(COUPON_KEY)
        if snapshot.coupon is not None and snapshot.coupon != self._coupon:
            if self._local_wins(coupon_clock, None, snapshot.updated_at):
                local_wins.append(COUPON_KEY)
            else:
                self._coupon = snapshot.coupon
                coupon_clock.acknowledged = coupon_clock.sequence
                remote_wins.append(COUPON_KEY)

        logger.debug(f"Merged remote snapshot: local wins {local_wins}, remote wins {remote_wins}")
        return MergeResult(update=self._commit(warnings), local_wins=local_wins, remote_wins=remote_wins)

    @staticmethod
    def _local_wins(clock: ItemClock, remote_sequence: Optional[int], snapshot_time: datetime) -> bool:
        if clock.last_modified_at is None:
            return False
        if remote_sequence is not None and remote_sequence < clock.sequence:
            return True
        return clock.last_modified_at > snapshot_time

    # ==================== Internals ====================

    def _get(self, item_id: str) -> Optional[LineItem]:
        return next((item for item in self._items if item.id == item_id), None)

    def _find_product(self, product_id: str) -> Optional[LineItem]:
        return next((item for item in self._items if item.product_id == product_id), None)

    def _replace(self, item: LineItem) -> None:
        self._items = [item if i.id == item.id else i for i in self._items]

    def _stock_warning(
        self,
        item_id: Optional[str],
        product_id: str,
        requested: int,
        max_quantity: int,
    ) -> StockLimitExceeded:
        logger.warning(f"Quantity {requested} for {product_id} clamped to stock limit {max_quantity}")
        return StockLimitExceeded(
            message=f"Only {max_quantity} available",
            item_id=item_id or "",
            product_id=product_id,
            requested=requested,
            max_quantity=max_quantity,
        )

    def _touch(self, key: str) -> ItemClock:
        clock = self.clock_for(key)
        clock.sequence += 1
        clock.last_modified_at = self._clock()
        return clock

    def _item_mutation(self, item: LineItem, kind: MutationKind, clock: ItemClock) -> CartMutation:
        return CartMutation(
            kind=kind,
            sequence=clock.sequence,
            modified_at=clock.last_modified_at or self._clock(),
            product_id=item.product_id,
            quantity=item.quantity if kind == MutationKind.SET_QUANTITY else None,
            unit_price=item.unit_price,
            discounted_price=item.discounted_unit_price,
            max_quantity=item.max_quantity,
            name=item.name,
        )

    def _emit_item(self, item: LineItem, kind: MutationKind) -> None:
        clock = self._touch(item.product_id)
        self._dispatch(self._item_mutation(item, kind, clock))

    def _emit(self, kind: MutationKind, key: str, **fields: Any) -> None:
        clock = self._touch(key)
        self._dispatch(
            CartMutation(kind=kind, sequence=clock.sequence, modified_at=clock.last_modified_at, **fields)
        )

    def _dispatch(self, mutation: CartMutation) -> None:
        for listener in list(self._mutation_listeners):
            listener(mutation)

    def _build_state(self) -> CartState:
        items = list(self._items)
        discount, free_delivery, coupon_warning = ZERO, False, None
        subtotal = price_calculator.display_subtotal(items)

        if self._coupon is not None:
            result = coupon_engine.evaluate(self._coupon.code, subtotal, self._coupon, now=self._clock())
            if result.ok:
                discount, free_delivery = result.discount, result.free_delivery
            else:
                coupon_warning = result.error.message

        breakdown = price_calculator.calculate(
            items,
            self._pricing,
            discount=discount,
            is_express=self._express,
            free_delivery=free_delivery,
        )
        return CartState(
            items=items,
            applied_coupon=self._coupon,
            coupon_warning=coupon_warning,
            free_delivery=free_delivery,
            is_express_delivery=self._express,
            subtotal=breakdown.subtotal,
            discount=breakdown.discount,
            delivery_charge=breakdown.delivery_charge,
            vat_amount=breakdown.vat_amount,
            total=breakdown.total,
            item_count=sum(item.quantity for item in items),
            currency=self._pricing.default_currency,
            sync_status=self._sync_status,
            last_synced_at=self._last_synced_at,
        )

    def _commit(self, warnings: Optional[list[CartWarning]] = None) -> CartUpdate:
        warnings = warnings or []
        self._state = self._build_state()
        for listener in list(self._state_listeners):
            listener(self._state)
        self._publish_warnings(warnings)
        return CartUpdate(state=self._state, warnings=warnings)

    def _reject(self, *warnings: CartWarning) -> CartUpdate:
        """Leave state untouched and surface warnings"""
        warnings = list(warnings)
        self._publish_warnings(warnings)
        return CartUpdate(state=self._state, warnings=warnings)

    def _publish_warnings(self, warnings: list[CartWarning]) -> None:
        for warning in warnings:
            for listener in list(self._warning_listeners):
                listener(warning)
