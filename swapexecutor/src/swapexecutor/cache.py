"""
Execution caches owned by the orchestrator.

``OrderExecutionCache`` is the idempotence ledger: an entry for
``(order_id, action)`` means that action was settled and must not be
dispatched again. ``claim`` serializes check-then-act per key so that
overlapping ticks can never broadcast the same action twice.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from swapcore.models import OrderAction

CacheKey = tuple[str, OrderAction]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CacheEntry:
    """Settlement record of one action on one order."""

    action: OrderAction
    tx_hash: str
    timestamp: int
    utxo: str | None = None


class OrderExecutionCache:
    """Idempotence ledger keyed by (order_id, action)."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._locks: dict[CacheKey, asyncio.Lock] = {}
        self._claimants: dict[CacheKey, int] = {}

    def get(self, order_id: str, action: OrderAction) -> CacheEntry | None:
        return self._entries.get((order_id, action))

    def set(
        self,
        order_id: str,
        action: OrderAction,
        tx_hash: str,
        utxo: str | None = None,
        timestamp: int | None = None,
    ) -> CacheEntry:
        """Record a settlement, replacing any previous entry for the key."""
        entry = CacheEntry(
            action=action,
            tx_hash=tx_hash,
            timestamp=timestamp if timestamp is not None else now_ms(),
            utxo=utxo,
        )
        self._entries[(order_id, action)] = entry
        return entry

    def remove(self, order_id: str, action: OrderAction) -> None:
        self._entries.pop((order_id, action), None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @asynccontextmanager
    async def claim(self, order_id: str, action: OrderAction) -> AsyncIterator[CacheEntry | None]:
        """
        Hold the per-key lock while checking and performing an action.

        Yields the existing entry (the caller must skip) or None (the caller
        may act and ``set`` the result before leaving the block).
        """
        key = (order_id, action)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._claimants[key] = self._claimants.get(key, 0) + 1
        try:
            async with lock:
                yield self._entries.get(key)
        finally:
            # a lock lives only while someone holds or waits for it
            self._claimants[key] -= 1
            if not self._claimants[key]:
                del self._claimants[key]
                del self._locks[key]


class RefundSacpCache:
    """Source initiate tx already covered by a posted instant-refund SACP, per order."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def get(self, order_id: str) -> str | None:
        return self._entries.get(order_id)

    def set(self, order_id: str, init_tx_hash: str) -> None:
        self._entries[order_id] = init_tx_hash

    def covers(self, order_id: str, init_tx_hash: str) -> bool:
        return self._entries.get(order_id) == init_tx_hash

    def __len__(self) -> int:
        return len(self._entries)
