"""
Sync Reconciler

Keeps the local cart store consistent with the remote cart while the
shopper is signed in:

1. On sign-in, pull the remote snapshot and merge it (last write wins
   per product, see CartStore.merge_remote).
2. Push every local change individually, debounced per product so a
   burst of quantity taps becomes one request.
3. Retry transient failures with bounded exponential backoff; surface
   permanent failures as warnings without rolling the local cart back.
4. Tag all remote work with the session id it started in and drop any
   result that arrives after the session changed.

Local cart usage never waits on any of this.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.config import Settings, get_settings
from ..core.errors import (
    CouponError,
    PermanentSyncError,
    RemoteCartError,
    SyncError,
    SyncErrorKind,
    TransientSyncError,
)
from ..core.session import UserSession, utcnow
from ..models.cart import PriceBreakdown, SyncStatus
from ..models.remote import (
    CART_KEY,
    COUPON_KEY,
    CartMutation,
    MutationKind,
    MutationResult,
    RemoteCartSnapshot,
)
from .cart_store import CartStore, CartUpdate, MergeResult
from .remote_cart_client import AvailabilityService, RemoteCartService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutReadiness:
    """Whether the cart may proceed to payment, and why not"""
    ready: bool
    breakdown: PriceBreakdown
    unavailable_item_ids: list[str] = field(default_factory=list)
    coupon_error: Optional[CouponError] = None
    problems: list[str] = field(default_factory=list)


class SyncReconciler:
    """
    Mediates between a CartStore and the remote cart service.

    Usage:
        reconciler = SyncReconciler(store, remote_client, settings)
        session_manager.subscribe(reconciler.on_auth_changed)

        await session_manager.login(user_id)   # pulls and merges
        store.set_quantity(item_id, 3)         # pushed after the debounce
        readiness = await reconciler.prepare_checkout()
    """

    def __init__(
        self,
        store: CartStore,
        remote: RemoteCartService,
        settings: Optional[Settings] = None,
        availability: Optional[AvailabilityService] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = settings or get_settings()
        self.store = store
        self.remote = remote
        self.availability = availability
        self._clock = clock

        self._debounce = settings.push_debounce_seconds
        self._max_attempts = settings.push_max_attempts
        self._retry_base = settings.push_retry_base_delay
        self._retry_max = settings.push_retry_max_delay
        self._max_age = timedelta(seconds=settings.checkout_sync_max_age_seconds)

        self._session: Optional[UserSession] = None
        self._pending: dict[str, CartMutation] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._push_lock = asyncio.Lock()
        self._in_flight = 0
        self._batch_failed = False

        store.subscribe_mutations(self._on_mutation)
        store.attach_synchronizer(self)

    # ==================== Session handling ====================

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def _is_current(self, session_id: str) -> bool:
        return self._session is not None and self._session.session_id == session_id

    async def on_auth_changed(self, session: UserSession) -> None:
        """Auth listener: pull on sign-in, abandon everything on sign-out"""
        if not session.is_authenticated:
            await self.logout()
            return

        self._abandon()
        self._session = session
        logger.info(f"Cart sync enabled for user {session.user_id}")
        await self.pull()
        await self.flush()

    async def logout(self) -> None:
        """Abandon in-flight work and clear the cart"""
        was_authenticated = self.is_authenticated
        self._session = None
        self._abandon()
        self.store.reset()
        if was_authenticated:
            logger.info("Cart sync disabled, local cart cleared")

    def _abandon(self) -> None:
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()
        self._pending.clear()
        self._in_flight = 0
        self._batch_failed = False
        self.store.abandon_sync()

    # ==================== Status bookkeeping ====================

    def _begin(self) -> None:
        if self._in_flight == 0:
            self._batch_failed = False
            self.store.begin_sync()
        self._in_flight += 1

    def _end(self, session_id: str, failed: bool) -> None:
        # A logout reset the counters and the store already
        if not self._is_current(session_id):
            return
        self._batch_failed = self._batch_failed or failed
        self._in_flight -= 1
        if self._in_flight == 0:
            self.store.finish_sync(success=not self._batch_failed, synced_at=self._clock())

    # ==================== Push ====================

    def _on_mutation(self, mutation: CartMutation) -> None:
        if self._session is None:
            return

        if mutation.kind == MutationKind.CLEAR:
            # A clear supersedes pending item pushes
            for key in [k for k in self._pending if k not in (CART_KEY, COUPON_KEY)]:
                self._drop_pending(key)

        self._schedule(mutation)

    def _schedule(self, mutation: CartMutation) -> None:
        key = mutation.key
        self._pending[key] = mutation

        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the push waits for the next flush()
            return
        self._timers[key] = loop.create_task(self._debounced(key, self._session.session_id))

    def _drop_pending(self, key: str) -> None:
        self._pending.pop(key, None)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    async def _debounced(self, key: str, session_id: str) -> None:
        await asyncio.sleep(self._debounce)
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]
        await self._push_key(key, session_id)

    async def _push_key(self, key: str, session_id: str) -> None:
        mutation = self._pending.pop(key, None)
        if mutation is None or not self._is_current(session_id):
            return
        await self._push(mutation, session_id)

    async def flush(self) -> None:
        """Push every pending change now instead of waiting for its debounce"""
        if self._session is None:
            return
        session_id = self._session.session_id

        for key in list(self._pending):
            timer = self._timers.pop(key, None)
            if timer is not None and timer is not asyncio.current_task():
                timer.cancel()
            await self._push_key(key, session_id)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_base, max=self._retry_max),
            retry=retry_if_exception_type(TransientSyncError),
            reraise=True,
            before_sleep=lambda state: logger.debug(
                f"Retrying cart sync (attempt {state.attempt_number}): {state.outcome.exception()}"
            ),
        )

    async def _send(self, user_id: str, mutation: CartMutation) -> MutationResult:
        result = None
        async for attempt in self._retrying():
            with attempt:
                result = await self.remote.push_mutation(user_id, mutation)
        return result

    async def _push(self, mutation: CartMutation, session_id: str) -> None:
        async with self._push_lock:
            if not self._is_current(session_id):
                return
            user_id = self._session.user_id
            failed = True
            self._begin()
            try:
                result = await self._send(user_id, mutation)
            except TransientSyncError as e:
                if self._is_current(session_id):
                    logger.error(f"Giving up on {mutation.kind.value} for {mutation.key}: {e}")
                    self.store.report_warning(
                        SyncError(
                            message="Your cart could not be saved. We'll try again shortly.",
                            kind=SyncErrorKind.TRANSIENT,
                            product_id=mutation.product_id,
                            status_code=e.status_code,
                        )
                    )
                    # Keep it pending so the next flush or sync retries it
                    self._pending.setdefault(mutation.key, mutation)
            except PermanentSyncError as e:
                if self._is_current(session_id):
                    logger.warning(f"Cart service rejected {mutation.kind.value} for {mutation.key}: {e}")
                    if mutation.product_id is not None:
                        self.store.flag_item(mutation.product_id, str(e))
                    self.store.report_warning(
                        SyncError(
                            message=str(e),
                            kind=SyncErrorKind.PERMANENT,
                            product_id=mutation.product_id,
                            status_code=e.status_code,
                        )
                    )
            else:
                if not self._is_current(session_id):
                    logger.warning(f"Discarding push result {mutation.mutation_id} from an old session")
                    return
                logger.debug(
                    f"Pushed {mutation.kind.value} for {mutation.key} "
                    f"(seq {mutation.sequence}, duplicate={result.duplicate}, stale={result.stale})"
                )
                self.store.acknowledge(mutation)
                failed = False
            finally:
                self._end(session_id, failed)

    # ==================== Pull ====================

    async def _fetch(self, user_id: str) -> RemoteCartSnapshot:
        snapshot = None
        async for attempt in self._retrying():
            with attempt:
                snapshot = await self.remote.fetch_cart(user_id)
        return snapshot

    async def pull(self) -> Optional[MergeResult]:
        """Fetch the remote snapshot and merge it into the local cart"""
        if self._session is None:
            return None
        session_id = self._session.session_id
        user_id = self._session.user_id

        failed = True
        self._begin()
        try:
            snapshot = await self._fetch(user_id)
        except RemoteCartError as e:
            if self._is_current(session_id):
                logger.warning(f"Could not fetch remote cart: {e}")
                self.store.report_warning(
                    SyncError(
                        message="Could not load your saved cart",
                        kind=SyncErrorKind.PERMANENT if isinstance(e, PermanentSyncError) else SyncErrorKind.TRANSIENT,
                        status_code=e.status_code,
                    )
                )
            return None
        else:
            if not self._is_current(session_id):
                logger.warning("Discarding remote cart snapshot from an old session")
                return None

            merge = self.store.merge_remote(snapshot)
            for key in merge.remote_wins:
                self._drop_pending(key)
            for key in merge.local_wins:
                self._schedule(self.store.current_mutation(key))
            failed = False
            logger.info(
                f"Merged remote cart for {user_id}: {len(merge.remote_wins)} remote, "
                f"{len(merge.local_wins)} local"
            )
            return merge
        finally:
            self._end(session_id, failed)

    async def sync(self) -> CartUpdate:
        """Push pending changes, pull and merge, then push what the merge kept locally"""
        if self._session is not None:
            await self.flush()
            await self.pull()
            await self.flush()
        return CartUpdate(state=self.store.state)

    # ==================== Checkout ====================

    def is_stale(self) -> bool:
        last = self.store.state.last_synced_at
        return last is None or self._clock() - last > self._max_age

    async def prepare_checkout(self) -> CheckoutReadiness:
        """
        Re-validate the cart right before charging.

        Re-syncs a stale cart, refreshes availability and the applied
        coupon, then prices the available items.
        """
        problems: list[str] = []

        if self.is_authenticated:
            if self.is_stale():
                await self.sync()
            else:
                await self.flush()

        if self.availability is not None and not self.store.state.is_empty:
            product_ids = [item.product_id for item in self.store.state.items]
            try:
                self.store.refresh_availability(await self.availability.check_availability(product_ids))
            except RemoteCartError as e:
                logger.warning(f"Availability check failed before checkout: {e}")
                problems.append("Could not confirm item availability")

        revoked = None
        try:
            revoked = await self.store.refresh_coupon()
        except RemoteCartError as e:
            logger.warning(f"Coupon check failed before checkout: {e}")
            problems.append("Could not confirm your coupon")

        breakdown, coupon_error = self.store.checkout_breakdown(revoked)
        state = self.store.state
        unavailable = [item.id for item in state.items if not item.is_available]

        if not any(item.is_available for item in state.items):
            problems.append("Your cart has no items available for checkout")
        if unavailable:
            problems.append(f"{len(unavailable)} item(s) in your cart are unavailable")
        if coupon_error is not None:
            problems.append(coupon_error.message)
        if self.is_authenticated and (state.sync_status == SyncStatus.ERROR or self.is_stale()):
            problems.append("Your cart could not be synchronised")
        if any(item.sync_warning for item in state.items):
            problems.append("Some items need your attention")

        return CheckoutReadiness(
            ready=not problems,
            breakdown=breakdown,
            unavailable_item_ids=unavailable,
            coupon_error=coupon_error,
            problems=problems,
        )
