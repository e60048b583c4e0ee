"""Test doubles shared across the suite"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from grocery_cart.models import (
    CartMutation,
    ItemAvailability,
    MutationResult,
    RemoteCartSnapshot,
)

T0 = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable UTC clock"""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeRemoteCart:
    """In-memory remote cart collaborator with scriptable failures"""

    def __init__(self, snapshot: Optional[RemoteCartSnapshot] = None):
        self.snapshot = snapshot or RemoteCartSnapshot(items=[], updated_at=T0 - timedelta(days=1))
        self.pushed: list[CartMutation] = []
        self.push_attempts: list[CartMutation] = []
        self.push_errors: list[Exception] = []
        self.fetch_errors: list[Exception] = []
        self.fetch_count = 0
        self.fetch_gate: Optional[asyncio.Event] = None
        self.push_gate: Optional[asyncio.Event] = None
        self.availability: dict[str, ItemAvailability] = {}

    async def fetch_cart(self, user_id: str) -> RemoteCartSnapshot:
        self.fetch_count += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        return self.snapshot

    async def push_mutation(self, user_id: str, mutation: CartMutation) -> MutationResult:
        self.push_attempts.append(mutation)
        if self.push_gate is not None:
            await self.push_gate.wait()
        if self.push_errors:
            raise self.push_errors.pop(0)
        self.pushed.append(mutation)
        return MutationResult(mutation_id=mutation.mutation_id, applied=True)

    async def check_availability(self, product_ids: list[str]) -> list[ItemAvailability]:
        return [self.availability[pid] for pid in product_ids if pid in self.availability]

