"""
Polling helpers shared by the executor's background loops.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

from loguru import logger


async def run_periodic_task(
    name: str,
    callback: Callable[[], Coroutine[Any, Any, None]],
    interval: float,
    run_immediately: bool = False,
    running_check: Callable[[], bool] | None = None,
) -> None:
    """
    Await ``callback`` every ``interval`` seconds, one invocation at a time.

    The interval runs from the end of one invocation to the start of the next.
    A failing callback is logged and polled again; the loop ends on
    cancellation or once ``running_check`` returns False.
    """
    keep_going = running_check or (lambda: True)
    delay = 0.0 if run_immediately else interval
    try:
        while keep_going():
            await asyncio.sleep(delay)
            delay = interval
            try:
                await callback()
            except Exception as e:
                logger.error(f"{name} failed: {e}")
    except asyncio.CancelledError:
        logger.debug(f"{name} cancelled")
        return
    logger.debug(f"{name} stopped")


def ms_to_seconds(interval_ms: int) -> float:
    return interval_ms / 1000
