"""
Pytest configuration and fixtures for swapexecutor tests.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from swapcore.models import ChainFamily, MatchedOrder, NetworkType, SwapLeg
from swapcore.secret_manager import SecretManager

from swapexecutor.chains import ChainHTLCRegistry
from swapexecutor.clients import OrderbookClient
from swapexecutor.config import ExecutorConfig
from swapexecutor.events import Event, EventType
from swapexecutor.orchestrator import ExecutionOrchestrator

DIGEST_KEY = "11" * 32
NOW_MS = 1_700_000_000_000
BLOCK_NUMBERS = {"bitcoin_testnet": 1_000, "ethereum_sepolia": 2_000}

INITIATOR = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
REDEEMER = "c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5"


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = NOW_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def secret_manager() -> SecretManager:
    return SecretManager.from_hex(DIGEST_KEY)


@pytest.fixture
def make_order(secret_manager: SecretManager) -> Callable[..., MatchedOrder]:
    """
    Factory for matched orders.

    The secret hash defaults to the one derived for the order nonce, so the
    orchestrator's secret check passes.
    """

    def _make(
        source: dict[str, Any] | None = None,
        destination: dict[str, Any] | None = None,
        order_id: str = "order-1",
        nonce: str = "1",
        deadline: int = 2_000_000_000,
        recipient: str | None = None,
        secret_hash: str | None = None,
    ) -> MatchedOrder:
        if secret_hash is None:
            secret_hash = secret_manager.generate_secret(nonce).secret_hash_hex
        base = {
            "initiator": INITIATOR,
            "redeemer": REDEEMER,
            "timelock": 10,
            "amount": "100000",
            "secret_hash": secret_hash,
        }
        source_leg = SwapLeg.model_validate(
            {**base, "swap_id": "src", "chain": "bitcoin_testnet", **(source or {})}
        )
        destination_leg = SwapLeg.model_validate(
            {**base, "swap_id": "dst", "chain": "ethereum_sepolia", **(destination or {})}
        )
        return MatchedOrder(
            source_swap=source_leg,
            destination_swap=destination_leg,
            create_order={
                "create_id": order_id,
                "nonce": nonce,
                "secret_hash": secret_hash,
                "source_chain": source_leg.chain,
                "destination_chain": destination_leg.chain,
                "additional_data": {
                    "deadline": deadline,
                    "bitcoin_optional_recipient": recipient,
                },
            },
        )

    return _make


@pytest.fixture
def orderbook() -> MagicMock:
    client = MagicMock(spec=OrderbookClient)
    client.get_pending_orders = AsyncMock(return_value=[])
    client.get_instant_refund_hash = AsyncMock(return_value=["ab" * 32])
    client.post_instant_refund = AsyncMock(return_value="ok")
    client.broadcast_bitcoin_redeem = AsyncMock(return_value="btc-redeem-txid")
    client.close = AsyncMock()
    client.subscribe_pending_orders = MagicMock(return_value=AsyncMock())
    return client


@pytest.fixture
def block_fetcher() -> MagicMock:
    fetcher = MagicMock()
    fetcher.fetch_block_numbers = AsyncMock(return_value=dict(BLOCK_NUMBERS))
    return fetcher


@pytest.fixture
def evm_htlc() -> MagicMock:
    htlc = MagicMock()
    htlc.initiate = AsyncMock(return_value="0xinitiate")
    htlc.redeem = AsyncMock(return_value="0xredeem")
    htlc.refund = AsyncMock(return_value="0xrefund")
    return htlc


@pytest.fixture
def bitcoin_wallet() -> MagicMock:
    wallet = MagicMock()
    wallet.address = "tb1pwallet"
    wallet.provider = MagicMock()
    wallet.provider.get_transaction = AsyncMock()
    wallet.provider.get_transaction_times = AsyncMock(return_value=[0])
    wallet.provider.close = AsyncMock()
    return wallet


@pytest.fixture
def config() -> ExecutorConfig:
    return ExecutorConfig(network=NetworkType.TESTNET, user_id="0xuser", post_refund_sacp=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def orchestrator(
    orderbook: MagicMock,
    block_fetcher: MagicMock,
    config: ExecutorConfig,
    secret_manager: SecretManager,
    evm_htlc: MagicMock,
    bitcoin_wallet: MagicMock,
    clock: FakeClock,
) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(
        orderbook,
        block_fetcher,
        config,
        secret_manager=secret_manager,
        htlcs=ChainHTLCRegistry({ChainFamily.EVM: evm_htlc}),
        bitcoin_wallet=bitcoin_wallet,
        clock=clock,
    )


@pytest.fixture
def collected_events(orchestrator: ExecutionOrchestrator) -> list[Event]:
    """Every event the orchestrator emits, in emission order."""
    events: list[Event] = []
    for event_type in EventType:
        orchestrator.events.subscribe(event_type, events.append)
    return events
