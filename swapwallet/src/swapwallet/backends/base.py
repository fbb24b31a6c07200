"""
Base class for Bitcoin chain-data providers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from swapcore.constants import (
    FEE_BUFFER_PERCENT,
    FEE_INPUT_VSIZE,
    FEE_OUTPUT_VSIZE,
    FEE_TX_OVERHEAD_VSIZE,
)
from swapcore.errors import InsufficientFundsError
from swapcore.models import BitcoinTx, BitcoinUTXO, FeeRates, NetworkType, Urgency


def sort_by_confirmed(utxos: list[BitcoinUTXO]) -> list[BitcoinUTXO]:
    """Confirmed UTXOs first, then by value descending."""
    return sorted(utxos, key=lambda u: (not u.status.confirmed, -u.value))


def select_utxos(utxos: list[BitcoinUTXO], amount: int | None = None) -> list[BitcoinUTXO]:
    """
    Select UTXOs covering ``amount``, largest first.

    Args:
        utxos: Candidate UTXOs
        amount: Target amount in sats, or None to return all UTXOs

    Returns:
        Selected UTXOs, sorted confirmed-first

    Raises:
        InsufficientFundsError: If the UTXOs cannot cover ``amount``
    """
    if not amount:
        return sort_by_confirmed(utxos)

    total = sum(u.value for u in utxos)
    if total < amount:
        raise InsufficientFundsError(total, amount)

    selected: list[BitcoinUTXO] = []
    running = 0
    for utxo in sorted(utxos, key=lambda u: -u.value):
        selected.append(utxo)
        running += utxo.value
        if running >= amount:
            break
    return sort_by_confirmed(selected)


def estimate_fee(fee_rate: int, num_inputs: int, num_outputs: int = 2) -> int:
    """
    Rough segwit fee estimate with a small rate buffer.

    Args:
        fee_rate: Fee rate in sat/vB
        num_inputs: Number of inputs
        num_outputs: Number of outputs

    Returns:
        Fee in sats
    """
    buffered_rate = fee_rate * (100 + FEE_BUFFER_PERCENT) // 100
    return buffered_rate * (
        num_inputs * FEE_INPUT_VSIZE + num_outputs * FEE_OUTPUT_VSIZE + FEE_TX_OVERHEAD_VSIZE
    )


class ChainDataProvider(ABC):
    """
    Abstract Bitcoin chain-data provider.

    Implementations wrap a block explorer API (esplora, mempool.space) or a node.
    Transport failures are raised as NetworkError.
    """

    network: NetworkType

    @abstractmethod
    async def get_utxos(self, address: str, amount: int | None = None) -> list[BitcoinUTXO]:
        """Get UTXOs of an address, optionally only enough to cover ``amount``."""

    @abstractmethod
    async def get_transaction(self, txid: str) -> BitcoinTx:
        """Get a transaction by txid."""

    @abstractmethod
    async def get_transaction_hex(self, txid: str) -> str:
        """Get the raw hex of a transaction."""

    @abstractmethod
    async def broadcast(self, tx_hex: str) -> str:
        """Broadcast a raw transaction and return its txid."""

    @abstractmethod
    async def get_fee_rates(self) -> FeeRates:
        """Get recommended fee rates."""

    @abstractmethod
    async def get_latest_tip(self) -> int:
        """Get the current block height."""

    async def get_balance(self, address: str) -> int:
        return sum(u.value for u in await self.get_utxos(address))

    async def get_transaction_times(self, txids: list[str]) -> list[int]:
        """
        First-seen times (ms) of unconfirmed transactions, 0 when unknown.

        Providers without mempool timing data report 0 for every txid.
        """
        return [0 for _ in txids]

    async def suggest_fee(self, address: str, amount: int, urgency: Urgency) -> int:
        """
        Suggest a fee for spending ``amount`` from ``address``.

        Only accurate for segwit inputs and outputs.
        """
        utxos = await self.get_utxos(address, amount)
        fee_rates = await self.get_fee_rates()
        return estimate_fee(fee_rates.for_urgency(urgency), len(utxos))

    async def close(self) -> None:  # noqa: B027
        pass
