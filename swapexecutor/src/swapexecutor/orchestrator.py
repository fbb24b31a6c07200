"""
Execution orchestrator: drives pending orders to completion.

Every tick takes a batch of pending orders, classifies each one from on-chain
observations and performs at most one action per order. Settled actions are
recorded in the OrderExecutionCache so they are never dispatched twice.
Failures never escape a tick; they are reported as ``error`` events and the
order is retried on the next poll.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from loguru import logger
from swapcore.constants import BTC_REDEEM_RBF_TIMEOUT_MS
from swapcore.errors import (
    AlreadySettledError,
    NetworkError,
    SecretMismatchError,
    SwapError,
    is_already_settled,
)
from swapcore.models import (
    ChainFamily,
    MatchedOrder,
    OrderAction,
    OrderStatus,
    OrderWithStatus,
    chain_family,
)
from swapcore.secret_manager import SecretManager
from swapcore.status import is_order_expired, parse_action, parse_order_status
from swapwallet.htlc.bitcoin_htlc import BitcoinHTLC
from swapwallet.signer import BitcoinWallet

from swapexecutor.cache import OrderExecutionCache, RefundSacpCache
from swapexecutor.chains import ChainHTLCRegistry
from swapexecutor.clients import BlockNumberFetcher, OrderbookClient
from swapexecutor.config import ExecutorConfig
from swapexecutor.events import (
    ErrorEvent,
    EventBus,
    LogEvent,
    PendingOrdersChangedEvent,
    RbfEvent,
    SuccessEvent,
)

# Statuses in which a Bitcoin source HTLC may need an instant refund
REFUND_SACP_STATUSES = frozenset(
    {
        OrderStatus.INITIATE_DETECTED,
        OrderStatus.INITIATED,
        OrderStatus.COUNTERPARTY_INITIATED,
        OrderStatus.COUNTERPARTY_INITIATE_DETECTED,
        OrderStatus.COUNTERPARTY_REFUND_DETECTED,
        OrderStatus.COUNTERPARTY_REFUNDED,
        OrderStatus.COUNTERPARTY_SWAP_EXPIRED,
        OrderStatus.EXPIRED,
        OrderStatus.DEADLINE_EXCEEDED,
    }
)

REDEEMED_STATUSES = frozenset({OrderStatus.REDEEMED, OrderStatus.COUNTERPARTY_REDEEMED})


def _now_ms() -> int:
    return int(time.time() * 1000)


class ExecutionOrchestrator:
    """
    Polls pending orders and dispatches the next action of each.

    Args:
        orderbook: Orderbook/relay client
        block_fetcher: Current block heights per chain
        config: Executor configuration
        secret_manager: Secret derivation; redeems are disabled without it
        htlcs: Non-Bitcoin HTLC implementations by chain family
        bitcoin_wallet: Wallet for Bitcoin HTLC spends
        cache: Idempotence ledger (a fresh one if None)
        events: Event bus (a fresh one if None)
        clock: Millisecond wall clock
    """

    def __init__(
        self,
        orderbook: OrderbookClient,
        block_fetcher: BlockNumberFetcher,
        config: ExecutorConfig,
        secret_manager: SecretManager | None = None,
        htlcs: ChainHTLCRegistry | None = None,
        bitcoin_wallet: BitcoinWallet | None = None,
        cache: OrderExecutionCache | None = None,
        events: EventBus | None = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.orderbook = orderbook
        self.block_fetcher = block_fetcher
        self.config = config
        self.secret_manager = secret_manager
        self.htlcs = htlcs or ChainHTLCRegistry()
        self.bitcoin_wallet = bitcoin_wallet
        self.cache = cache or OrderExecutionCache()
        self.refund_sacp_cache = RefundSacpCache()
        self.events = events or EventBus()
        self.clock = clock
        self._unsubscribe: Callable[[], Awaitable[None]] | None = None

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, interval_ms: int | None = None) -> None:
        """Subscribe to pending orders; every batch is processed by ``tick``."""
        if self._unsubscribe is not None:
            logger.warning("Executor already running")
            return
        interval = interval_ms if interval_ms is not None else self.config.poll_interval_ms
        logger.info(
            f"Starting executor for {self.config.user_id} (poll every {interval} ms, "
            f"secret management {'on' if self.secret_manager else 'off'})"
        )
        self._unsubscribe = self.orderbook.subscribe_pending_orders(
            self.config.user_id, self.tick, interval
        )

    async def stop(self) -> None:
        """Stop polling. A tick already in progress runs to completion first."""
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            await unsubscribe()
            logger.info("Executor stopped")
        await self.events.drain()

    # =========================================================================
    # Tick
    # =========================================================================

    async def assign_status(self, orders: list[MatchedOrder]) -> list[OrderWithStatus]:
        """
        Classify every order against the current block heights.

        Orders whose chains have no known block height are reported as
        errors and left out.
        """
        if not orders:
            return []

        try:
            block_numbers = await self.block_fetcher.fetch_block_numbers()
        except SwapError as e:
            for order in orders:
                self._error(order, f"Error while fetching current block numbers: {e}")
            return []

        now = self.clock()
        result: list[OrderWithStatus] = []
        for order in orders:
            source_block = block_numbers.get(order.source_swap.chain)
            destination_block = block_numbers.get(order.destination_swap.chain)
            if not source_block or not destination_block:
                self._error(order, "Error while fetching current block numbers")
                continue
            status = parse_order_status(order, source_block, destination_block, now)
            result.append(OrderWithStatus(order=order, status=status))
        return result

    async def tick(self, orders: list[MatchedOrder]) -> None:
        """Process one batch of pending orders, sequentially."""
        orders_with_status = await self.assign_status(orders)
        self.events.emit(PendingOrdersChangedEvent(orders=orders_with_status))

        for item in orders_with_status:
            try:
                await self._process(item.order, item.status)
            except Exception as e:
                logger.exception(f"Unexpected error processing order {item.order_id}")
                self._error(item.order, f"Unexpected error: {e}")

    async def _process(self, order: MatchedOrder, status: OrderStatus) -> None:
        if self.secret_manager is None:
            self._report_observed_redeem(order, status)
            return

        if (
            self.config.post_refund_sacp
            and chain_family(order.source_swap.chain) == ChainFamily.BITCOIN
            and status in REFUND_SACP_STATUSES
        ):
            await self.post_refund_sacp(order)

        # A detected destination redeem only needs attention on Bitcoin,
        # where an unconfirmed redeem may have to be replaced
        if status == OrderStatus.REDEEM_DETECTED:
            if chain_family(order.destination_swap.chain) == ChainFamily.BITCOIN:
                await self.redeem(order)
            return

        action = parse_action(status)
        if action == OrderAction.INITIATE:
            await self.initiate(order)
        elif action == OrderAction.REDEEM:
            await self.redeem(order)
        elif action == OrderAction.REFUND:
            await self.refund(order)

    def _report_observed_redeem(self, order: MatchedOrder, status: OrderStatus) -> None:
        """Without secrets nothing is executed; settled redeems are still reported."""
        if status not in REDEEMED_STATUSES:
            return
        tx_hash = order.destination_swap.redeem_tx_hash
        if not tx_hash:
            return
        cached = self.cache.get(order.order_id, OrderAction.REDEEM)
        if cached is not None and cached.tx_hash == tx_hash:
            return
        self.cache.set(order.order_id, OrderAction.REDEEM, tx_hash)
        self.events.emit(SuccessEvent(order=order, action=OrderAction.REDEEM, tx_hash=tx_hash))

    # =========================================================================
    # Events
    # =========================================================================

    def _log(self, order: MatchedOrder, message: str) -> None:
        logger.debug(f"[{order.order_id}] {message}")
        self.events.emit(LogEvent(order_id=order.order_id, message=message))

    def _error(
        self, order: MatchedOrder, message: str, action: OrderAction | None = None
    ) -> None:
        logger.warning(f"[{order.order_id}] {message}")
        self.events.emit(ErrorEvent(order=order, message=message, action=action))

    def _success(self, order: MatchedOrder, action: OrderAction, tx_hash: str) -> None:
        logger.info(f"[{order.order_id}] {action.value} succeeded: {tx_hash}")
        self.events.emit(SuccessEvent(order=order, action=action, tx_hash=tx_hash))

    def _settled_remotely(
        self, order: MatchedOrder, action: OrderAction, observed_tx_hash: str, message: str
    ) -> None:
        """The counterparty chain reports the action as done: record it, do not retry."""
        if observed_tx_hash:
            self.cache.set(order.order_id, action, observed_tx_hash)
            self._success(order, action, observed_tx_hash)
        else:
            self._log(order, f"{action.value} already settled: {message}")

    # =========================================================================
    # Initiate
    # =========================================================================

    async def initiate(self, order: MatchedOrder) -> None:
        family = chain_family(order.source_swap.chain)
        if family == ChainFamily.BITCOIN:
            self._log(order, "bitcoin initiation is a user deposit, nothing to execute")
            return
        if is_order_expired(order, self.clock()):
            self._log(order, "initiation window passed, skipping initiate")
            return

        htlc = self.htlcs.get(family)
        if htlc is None:
            self._error(order, f"No HTLC for chain {order.source_swap.chain}", OrderAction.INITIATE)
            return

        async with self.cache.claim(order.order_id, OrderAction.INITIATE) as cached:
            if cached is not None:
                self._log(order, "already initiated")
                return
            self._log(order, f"executing {family.value} initiate")
            try:
                tx_hash = await htlc.initiate(order)
            except Exception as e:
                if is_already_settled(str(e)):
                    self._settled_remotely(
                        order, OrderAction.INITIATE, order.source_swap.initiate_tx_hash, str(e)
                    )
                    return
                self._error(order, f"Failed {family.value} initiate: {e}", OrderAction.INITIATE)
                return
            self.cache.set(order.order_id, OrderAction.INITIATE, tx_hash)
            self._success(order, OrderAction.INITIATE, tx_hash)

    # =========================================================================
    # Redeem
    # =========================================================================

    def _derive_secret(self, order: MatchedOrder) -> str:
        assert self.secret_manager is not None
        derived = self.secret_manager.generate_secret(order.nonce)
        if order.secret_hash and derived.secret_hash_hex != order.secret_hash:
            raise SecretMismatchError()
        return derived.secret_hex

    async def redeem(self, order: MatchedOrder) -> None:
        try:
            secret = self._derive_secret(order)
        except SwapError as e:
            self._error(order, f"Failed to derive secret: {e}", OrderAction.REDEEM)
            return

        family = chain_family(order.destination_swap.chain)
        if family == ChainFamily.BITCOIN:
            await self._bitcoin_redeem(order, secret)
            return

        htlc = self.htlcs.get(family)
        if htlc is None:
            self._error(
                order, f"Unsupported chain: {order.destination_swap.chain}", OrderAction.REDEEM
            )
            return

        async with self.cache.claim(order.order_id, OrderAction.REDEEM) as cached:
            if cached is not None:
                self._log(order, "already redeemed")
                return
            self._log(order, f"executing {family.value} redeem")
            try:
                tx_hash = await htlc.redeem(order, secret)
            except Exception as e:
                if is_already_settled(str(e)):
                    self._settled_remotely(
                        order, OrderAction.REDEEM, order.destination_swap.redeem_tx_hash, str(e)
                    )
                    return
                self._error(order, f"Failed {family.value} redeem: {e}", OrderAction.REDEEM)
                return
            self.cache.set(order.order_id, OrderAction.REDEEM, tx_hash)
            self._success(order, OrderAction.REDEEM, tx_hash)

    async def _observed_redeem_is_valid(
        self, order: MatchedOrder, filler_init_tx: str
    ) -> bool | None:
        """
        Check whether the unconfirmed destination redeem spends the filler's
        latest initiation. Returns None when the lookup itself failed.
        """
        assert self.bitcoin_wallet is not None
        provider = self.bitcoin_wallet.provider
        redeem_tx_hash = order.destination_swap.redeem_tx_hash
        try:
            tx = await provider.get_transaction(redeem_tx_hash)
        except NetworkError as e:
            if "not found" in str(e).lower():
                return False
            self._error(order, f"Failed to get redeem tx: {e}", OrderAction.REDEEM)
            return None

        if not any(vin.txid == filler_init_tx for vin in tx.vin):
            return False

        redeemed_at = 0
        try:
            [redeemed_at] = await provider.get_transaction_times([redeem_tx_hash])
        except (NetworkError, ValueError) as e:
            logger.debug(f"No first-seen time for {redeem_tx_hash}: {e}")
        self.cache.set(
            order.order_id,
            OrderAction.REDEEM,
            redeem_tx_hash,
            utxo=filler_init_tx,
            timestamp=redeemed_at or self.clock(),
        )
        return True

    async def _bitcoin_redeem(self, order: MatchedOrder, secret: str) -> None:
        """
        Redeem a Bitcoin destination HTLC, replacing stuck redeems.

        A new redeem spending the filler's latest initiation is broadcast when
        the previous one spent an older initiation, or stayed unconfirmed for
        longer than the RBF timeout.
        """
        if self.bitcoin_wallet is None:
            self._error(order, "BTC wallet not found", OrderAction.REDEEM)
            return

        filler_init_tx = order.destination_swap.latest_initiate_tx_id
        if not filler_init_tx:
            self._error(order, "Failed to get initiate_tx_hash", OrderAction.REDEEM)
            return

        async with self.cache.claim(order.order_id, OrderAction.REDEEM) as cached:
            rbf = False
            if cached is not None:
                if cached.utxo and cached.utxo != filler_init_tx:
                    self._log(order, "rbf btc redeem")
                    rbf = True
                elif self.clock() - cached.timestamp > BTC_REDEEM_RBF_TIMEOUT_MS:
                    self._log(order, "redeem not confirmed in last 15 minutes")
                    rbf = True
                else:
                    self._log(order, "already redeemed")
                    return
            elif (
                order.destination_swap.redeem_tx_hash
                and not order.destination_swap.redeem_block_number
            ):
                valid = await self._observed_redeem_is_valid(order, filler_init_tx)
                if valid is None:
                    return
                if valid:
                    self._log(order, "already a valid redeem")
                    return
                rbf = True

            self._log(order, "executing btc redeem")
            try:
                htlc = BitcoinHTLC.from_params(
                    self.bitcoin_wallet,
                    order.destination_swap.amount,
                    order.secret_hash,
                    order.destination_swap.initiator,
                    order.destination_swap.redeemer,
                    order.destination_swap.timelock,
                    utxo_hashes=[filler_init_tx] if rbf else None,
                )
                redeem_hex = await htlc.get_redeem_hex(secret, order.bitcoin_optional_recipient)
                tx_hash = await self.orderbook.broadcast_bitcoin_redeem(order.order_id, redeem_hex)
            except AlreadySettledError as e:
                self._settled_remotely(
                    order, OrderAction.REDEEM, order.destination_swap.redeem_tx_hash, str(e)
                )
                return
            except SwapError as e:
                self._error(order, f"Failed btc redeem: {e}", OrderAction.REDEEM)
                return

            self.cache.set(
                order.order_id,
                OrderAction.REDEEM,
                tx_hash,
                utxo=filler_init_tx,
                timestamp=self.clock(),
            )
            if rbf:
                self._log(order, "rbf: btc redeem success")
                self.events.emit(RbfEvent(order=order, tx_hash=tx_hash))
            else:
                self._success(order, OrderAction.REDEEM, tx_hash)

    # =========================================================================
    # Refund
    # =========================================================================

    async def refund(self, order: MatchedOrder) -> None:
        family = chain_family(order.source_swap.chain)
        if family != ChainFamily.BITCOIN:
            self._log(order, f"{family.value} refund is automatically done by relay service")
            return

        if self.bitcoin_wallet is None:
            self._error(order, "BTC wallet not found", OrderAction.REFUND)
            return

        async with self.cache.claim(order.order_id, OrderAction.REFUND) as cached:
            if cached is not None:
                self._log(order, "already refunded")
                return
            self._log(order, "executing btc refund")
            try:
                htlc = BitcoinHTLC.from_params(
                    self.bitcoin_wallet,
                    order.source_swap.amount,
                    order.secret_hash,
                    order.source_swap.initiator,
                    order.source_swap.redeemer,
                    order.source_swap.timelock,
                )
                tx_hash = await htlc.refund(order.bitcoin_optional_recipient)
            except SwapError as e:
                if is_already_settled(str(e)):
                    self._settled_remotely(
                        order, OrderAction.REFUND, order.source_swap.refund_tx_hash, str(e)
                    )
                    return
                self._error(order, f"Failed btc refund: {e}", OrderAction.REFUND)
                return
            self.cache.set(order.order_id, OrderAction.REFUND, tx_hash)
            self._success(order, OrderAction.REFUND, tx_hash)

    async def post_refund_sacp(self, order: MatchedOrder) -> None:
        """
        Sign the relay's instant-refund sighashes for a Bitcoin source HTLC.

        Posted once per source initiation; a new initiation (re-funding)
        triggers a new post.
        """
        init_tx_hash = order.source_swap.initiate_tx_hash
        if self.refund_sacp_cache.covers(order.order_id, init_tx_hash):
            return
        if not order.bitcoin_optional_recipient:
            return
        if self.bitcoin_wallet is None:
            self._error(order, "BTC wallet not found", OrderAction.REFUND)
            return

        try:
            htlc = BitcoinHTLC.from_params(
                self.bitcoin_wallet,
                order.source_swap.amount,
                order.secret_hash,
                order.source_swap.initiator,
                order.source_swap.redeemer,
                order.source_swap.timelock,
            )
            hashes = await self.orderbook.get_instant_refund_hash(order.order_id)
            signatures = await htlc.sign_instant_refund_hashes(hashes)
            await self.orderbook.post_instant_refund(order.order_id, signatures)
        except SwapError as e:
            self._error(order, f"Failed to generate and post SACP: {e}", OrderAction.REFUND)
            return

        self.refund_sacp_cache.set(order.order_id, init_tx_hash)
        self._log(order, "posted instant refund SACP")
