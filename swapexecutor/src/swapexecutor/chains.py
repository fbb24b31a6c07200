"""
HTLC capability of non-Bitcoin chains.

EVM, Solana, Starknet and Sui HTLCs are driven through contract or relay
wrappers living outside this package. The orchestrator selects one by the
chain family of the leg it acts on.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from swapcore.models import ChainFamily, MatchedOrder


@runtime_checkable
class ChainHTLC(Protocol):
    """Uniform HTLC operations; each returns the settlement tx hash."""

    async def initiate(self, order: MatchedOrder) -> str: ...

    async def redeem(self, order: MatchedOrder, secret: str) -> str: ...

    async def refund(self, order: MatchedOrder) -> str: ...


class ChainHTLCRegistry:
    """Chain family -> HTLC implementation."""

    def __init__(self, htlcs: dict[ChainFamily, ChainHTLC] | None = None):
        self._htlcs: dict[ChainFamily, ChainHTLC] = {}
        for family, htlc in (htlcs or {}).items():
            self.register(family, htlc)

    def register(self, family: ChainFamily, htlc: ChainHTLC) -> None:
        if family == ChainFamily.BITCOIN:
            raise ValueError("Bitcoin HTLCs are built per order, not registered")
        self._htlcs[family] = htlc

    def get(self, family: ChainFamily) -> ChainHTLC | None:
        return self._htlcs.get(family)
