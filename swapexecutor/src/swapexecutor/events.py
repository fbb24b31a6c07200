"""
Typed publish/subscribe channel for executor lifecycle events.

Listeners are delivered to as independent tasks: emitting never waits on a
listener and a failing listener only produces a log line.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Union

from loguru import logger
from swapcore.models import MatchedOrder, OrderAction, OrderWithStatus


class EventType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    LOG = "log"
    RBF = "rbf"
    PENDING_ORDERS_CHANGED = "pending_orders_changed"


@dataclass(frozen=True)
class SuccessEvent:
    order: MatchedOrder
    action: OrderAction
    tx_hash: str

    type = EventType.SUCCESS


@dataclass(frozen=True)
class ErrorEvent:
    order: MatchedOrder
    message: str
    action: OrderAction | None = None

    type = EventType.ERROR


@dataclass(frozen=True)
class LogEvent:
    order_id: str
    message: str

    type = EventType.LOG


@dataclass(frozen=True)
class RbfEvent:
    """A stuck Bitcoin redeem was replaced."""

    order: MatchedOrder
    tx_hash: str

    type = EventType.RBF


@dataclass(frozen=True)
class PendingOrdersChangedEvent:
    orders: list[OrderWithStatus]

    type = EventType.PENDING_ORDERS_CHANGED


Event = Union[SuccessEvent, ErrorEvent, LogEvent, RbfEvent, PendingOrdersChangedEvent]
Listener = Callable[[Event], Union[Awaitable[None], None]]


class EventBus:
    """Multi-subscriber, fire-and-forget event channel."""

    def __init__(self) -> None:
        self._listeners: dict[EventType, list[Listener]] = {t: [] for t in EventType}
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, event_type: EventType, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for one event type.

        Returns:
            Callable removing the listener again
        """
        self._listeners[event_type].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[event_type]:
                self._listeners[event_type].remove(listener)

        return unsubscribe

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners[event_type])

    def emit(self, event: Event) -> None:
        """Schedule delivery of ``event`` to every current listener."""
        for listener in list(self._listeners[event.type]):
            task = asyncio.create_task(self._deliver(listener, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, listener: Listener, event: Event) -> None:
        try:
            result = listener(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Event listener for {event.type.value} failed: {e}")

    async def drain(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        for listeners in self._listeners.values():
            listeners.clear()
