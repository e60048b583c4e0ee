"""Session management for the shopper's cart"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

AuthListener = Callable[["UserSession"], Awaitable[None]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UserSession:
    """
    Shopper session.

    A new session id is issued on every login and logout so that late
    responses from a previous session can be recognised and dropped.
    """
    session_id: str
    created_at: datetime
    updated_at: datetime
    user_id: Optional[str] = None
    auth_token: Optional[str] = None
    context: dict = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


class SessionManager:
    """Owns the current session and notifies listeners on auth changes"""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._listeners: list[AuthListener] = []
        self.current = self._new_session()

    def _new_session(
        self,
        user_id: Optional[str] = None,
        auth_token: Optional[str] = None,
    ) -> UserSession:
        now = self._clock()
        return UserSession(
            session_id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            auth_token=auth_token,
        )

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register an auth-change listener; returns an unsubscribe callable"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def is_current(self, session_id: str) -> bool:
        return self.current.session_id == session_id

    async def login(self, user_id: str, auth_token: Optional[str] = None) -> UserSession:
        """Start an authenticated session"""
        self.current = self._new_session(user_id=user_id, auth_token=auth_token)
        logger.info(f"User {user_id} signed in (session {self.current.session_id})")
        await self._notify()
        return self.current

    async def logout(self) -> UserSession:
        """Drop authentication and start a fresh guest session"""
        previous = self.current
        self.current = self._new_session()
        logger.info(f"User {previous.user_id} signed out (session {previous.session_id})")
        await self._notify()
        return self.current

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            await listener(self.current)
