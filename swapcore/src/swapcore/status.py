"""
Swap and order status classification.

Statuses are derived purely from the orderbook snapshot of both legs, the
current block height of each chain and the attested deadline. Nothing here is
persisted; callers recompute on every poll.
"""

from __future__ import annotations

import time

from swapcore.constants import INITIATED_DEADLINE_HOURS, NOT_INITIATED_DEADLINE_HOURS
from swapcore.models import MatchedOrder, OrderAction, OrderStatus, SwapLeg, SwapStatus

MS_PER_HOUR = 3_600_000


def parse_swap_status(leg: SwapLeg, current_block: int) -> SwapStatus:
    """
    Classify one swap leg.

    Precedence is redeem > refund > expiry > initiate > idle, so a leg that
    redeemed after its own expiry is still reported as redeemed.

    Args:
        leg: Swap leg snapshot
        current_block: Current block height of the leg's chain (L1 height
            for L2 chains)

    Returns:
        SwapStatus of the leg
    """
    if leg.redeem_tx_hash:
        return SwapStatus.REDEEMED if leg.redeem_block_number else SwapStatus.REDEEM_DETECTED

    if leg.refund_tx_hash:
        return SwapStatus.REFUNDED if leg.refund_block_number else SwapStatus.REFUND_DETECTED

    if leg.initiate_block_number:
        if current_block > leg.initiate_block_number + leg.timelock:
            return SwapStatus.EXPIRED

    if leg.initiate_tx_hash:
        return SwapStatus.INITIATED if leg.initiate_block_number else SwapStatus.INITIATE_DETECTED

    return SwapStatus.IDLE


def is_expired(unix_time: int, hours_margin: float = 0, now_ms: int | None = None) -> bool:
    """
    Check whether ``unix_time`` plus a margin has passed.

    Args:
        unix_time: Deadline in unix seconds
        hours_margin: Extra hours added to the deadline
        now_ms: Current time in milliseconds (defaults to wall clock)

    Returns:
        True when now >= deadline + margin
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return now_ms >= unix_time * 1000 + hours_margin * MS_PER_HOUR


def parse_order_status(
    order: MatchedOrder,
    source_block: int,
    destination_block: int,
    now_ms: int | None = None,
) -> OrderStatus:
    """
    Combine both legs' statuses and the deadline into an order status.

    The order is read from the perspective of the source-leg initiator
    (the user): destination events are the user's redeem, source events are
    the counterparty's.

    Args:
        order: Matched order snapshot
        source_block: Current block height of the source chain
        destination_block: Current block height of the destination chain
        now_ms: Current time in milliseconds (defaults to wall clock)

    Returns:
        OrderStatus of the order
    """
    source = parse_swap_status(order.source_swap, source_block)
    destination = parse_swap_status(order.destination_swap, destination_block)

    if destination == SwapStatus.REDEEM_DETECTED:
        return OrderStatus.REDEEM_DETECTED
    if destination == SwapStatus.REDEEMED:
        return OrderStatus.REDEEMED

    if source == SwapStatus.REFUNDED:
        return OrderStatus.REFUNDED
    if source == SwapStatus.REFUND_DETECTED:
        return OrderStatus.REFUND_DETECTED

    # The source can only be redeemed with the secret our destination redeem
    # revealed. If that redeem was dropped and replaced (RBF) the destination
    # leg looks initiated or even expired again; the order stays redeemed.
    if source in (SwapStatus.REDEEMED, SwapStatus.REDEEM_DETECTED) and destination in (
        SwapStatus.INITIATED,
        SwapStatus.EXPIRED,
    ):
        return OrderStatus.REDEEMED

    if destination == SwapStatus.EXPIRED:
        return OrderStatus.COUNTERPARTY_SWAP_EXPIRED
    if source == SwapStatus.EXPIRED:
        return OrderStatus.EXPIRED

    if destination == SwapStatus.REFUNDED:
        return OrderStatus.COUNTERPARTY_REFUNDED
    if destination == SwapStatus.REFUND_DETECTED:
        return OrderStatus.COUNTERPARTY_REFUND_DETECTED

    if destination == SwapStatus.INITIATED:
        return OrderStatus.COUNTERPARTY_INITIATED
    if destination == SwapStatus.INITIATE_DETECTED:
        return OrderStatus.COUNTERPARTY_INITIATE_DETECTED

    # Initiation must happen before the attested deadline
    if is_expired(order.deadline, 0, now_ms):
        return OrderStatus.DEADLINE_EXCEEDED
    if source == SwapStatus.INITIATED:
        return OrderStatus.INITIATED
    if source == SwapStatus.INITIATE_DETECTED:
        return OrderStatus.INITIATE_DETECTED

    if source == SwapStatus.REDEEMED:
        return OrderStatus.COUNTERPARTY_REDEEMED
    if source == SwapStatus.REDEEM_DETECTED:
        return OrderStatus.COUNTERPARTY_REDEEM_DETECTED

    return OrderStatus.MATCHED


def parse_action(status: OrderStatus) -> OrderAction:
    """Map an order status to the single next action."""
    if status == OrderStatus.MATCHED:
        return OrderAction.INITIATE
    if status in (
        OrderStatus.COUNTERPARTY_INITIATED,
        OrderStatus.COUNTERPARTY_INITIATE_DETECTED,
        OrderStatus.REDEEM_DETECTED,
    ):
        return OrderAction.REDEEM
    if status == OrderStatus.EXPIRED:
        return OrderAction.REFUND
    return OrderAction.IDLE


def parse_order_action(
    order: MatchedOrder,
    source_block: int,
    destination_block: int,
    now_ms: int | None = None,
) -> OrderAction:
    """
    Resolve the action to perform for an order snapshot.

    Unlike :func:`parse_action`, a redeem that is already visible on the
    destination chain yields ``IDLE``: it was submitted and only awaits
    confirmation. Replacing a stuck Bitcoin redeem is the executor's call.
    """
    status = parse_order_status(order, source_block, destination_block, now_ms)
    if status == OrderStatus.REDEEM_DETECTED:
        return OrderAction.IDLE
    return parse_action(status)


def is_order_expired(order: MatchedOrder, now_ms: int | None = None) -> bool:
    """
    Check whether an order missed its initiation window.

    A confirmed source initiation never expires here. An unconfirmed one gets
    12 hours past the deadline, a missing one 1 hour.
    """
    source = order.source_swap
    if source.initiate_tx_hash and source.initiate_block_number:
        return False
    if source.initiate_tx_hash:
        return is_expired(order.deadline, INITIATED_DEADLINE_HOURS, now_ms)
    return is_expired(order.deadline, NOT_INITIATED_DEADLINE_HOURS, now_ms)


def filter_deadline_expired_orders(
    orders: list[MatchedOrder], now_ms: int | None = None
) -> list[MatchedOrder]:
    """Drop orders whose initiation window has passed."""
    return [order for order in orders if not is_order_expired(order, now_ms)]
