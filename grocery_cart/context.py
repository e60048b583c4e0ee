"""
Composition root.

Builds the cart, its remote collaborators and the session wiring for
one app session. Consumers receive the CartContext explicitly; nothing
here is a module-level singleton.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .core.config import Settings, get_settings
from .core.session import SessionManager, UserSession
from .services.cart_store import CartStore
from .services.coupon_resolver import CachedCouponResolver
from .services.remote_cart_client import RemoteCartClient
from .services.sync_reconciler import SyncReconciler

logger = logging.getLogger(__name__)


@dataclass
class CartContext:
    """Everything the UI layer needs to drive the cart"""
    settings: Settings
    sessions: SessionManager
    store: CartStore
    reconciler: SyncReconciler
    client: RemoteCartClient

    async def login(self, user_id: str, auth_token: Optional[str] = None) -> UserSession:
        return await self.sessions.login(user_id, auth_token)

    async def logout(self) -> UserSession:
        return await self.sessions.logout()

    async def close(self) -> None:
        await self.reconciler.logout()
        await self.client.close()


def build_cart_context(
    settings: Optional[Settings] = None,
    client: Optional[RemoteCartClient] = None,
) -> CartContext:
    """Wire a cart store to the remote cart service for one app session"""
    settings = settings or get_settings()
    client = client or RemoteCartClient.from_settings(settings)
    sessions = SessionManager()

    store = CartStore(settings, coupon_resolver=CachedCouponResolver(client))
    reconciler = SyncReconciler(store, client, settings, availability=client)

    async def on_auth_changed(session: UserSession) -> None:
        client.auth_token = session.auth_token
        await reconciler.on_auth_changed(session)

    sessions.subscribe(on_auth_changed)
    logger.info(f"Cart context ready (remote cart at {settings.remote_cart_base_url})")

    return CartContext(
        settings=settings,
        sessions=sessions,
        store=store,
        reconciler=reconciler,
        client=client,
    )
