"""
Pytest configuration and fixtures for swapcore tests.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from swapcore.models import MatchedOrder, SwapLeg

# sha256 of 32 zero bytes
SECRET_HASH = "66687aadf862bd776c8fc18b8e9f8e20089714856ee233b3902a591d0d5f2925"
INITIATOR = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
REDEEMER = "c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5"


@pytest.fixture
def make_leg() -> Callable[..., SwapLeg]:
    """Factory for swap legs; keyword arguments override the defaults."""

    def _make(**overrides: Any) -> SwapLeg:
        data: dict[str, Any] = {
            "swap_id": "swap",
            "chain": "bitcoin_testnet",
            "asset": "primary",
            "initiator": INITIATOR,
            "redeemer": REDEEMER,
            "timelock": 10,
            "amount": "100000",
            "secret_hash": SECRET_HASH,
        }
        data.update(overrides)
        return SwapLeg.model_validate(data)

    return _make


@pytest.fixture
def make_order(make_leg: Callable[..., SwapLeg]) -> Callable[..., MatchedOrder]:
    """Factory for matched orders built from two legs."""

    def _make(
        source: dict[str, Any] | None = None,
        destination: dict[str, Any] | None = None,
        deadline: int = 2_000_000_000,
        order_id: str = "order-1",
        nonce: str = "1",
        recipient: str | None = None,
    ) -> MatchedOrder:
        source_leg = make_leg(**(source or {}))
        destination_leg = make_leg(
            **{"chain": "ethereum_sepolia", "swap_id": "dest", **(destination or {})}
        )
        return MatchedOrder(
            source_swap=source_leg,
            destination_swap=destination_leg,
            create_order={
                "create_id": order_id,
                "nonce": nonce,
                "secret_hash": SECRET_HASH,
                "source_chain": source_leg.chain,
                "destination_chain": destination_leg.chain,
                "additional_data": {
                    "deadline": deadline,
                    "bitcoin_optional_recipient": recipient,
                },
            },
        )

    return _make
