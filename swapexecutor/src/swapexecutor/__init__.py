"""
Swap executor.

Polls a user's pending cross-chain swap orders and drives each one to
completion: initiate, redeem with the derived secret, or refund.
"""

from swapcore import __version__

from swapexecutor.cache import OrderExecutionCache
from swapexecutor.config import ExecutorConfig
from swapexecutor.events import EventBus, EventType
from swapexecutor.orchestrator import ExecutionOrchestrator

__all__ = [
    "EventBus",
    "EventType",
    "ExecutionOrchestrator",
    "ExecutorConfig",
    "OrderExecutionCache",
    "__version__",
]
