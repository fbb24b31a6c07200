"""
Pytest configuration and fixtures for swapwallet tests.
"""

from __future__ import annotations

import pytest
from swapcore.bitcoin import get_txid, sha256
from swapcore.constants import REGTEST_FEE_RATES
from swapcore.errors import NetworkError
from swapcore.models import BitcoinTx, BitcoinUTXO, FeeRates, NetworkType, TxStatus

from swapwallet.backends.base import ChainDataProvider, select_utxos
from swapwallet.signer import KeyWallet

INITIATOR_KEY = (1).to_bytes(32, "big")
REDEEMER_KEY = (2).to_bytes(32, "big")
SECRET = bytes(32)
TIMELOCK = 10


class InMemoryProvider(ChainDataProvider):
    """Chain-data provider backed by dictionaries, recording broadcasts."""

    def __init__(self, network: NetworkType = NetworkType.REGTEST):
        self.network = network
        self.utxos: dict[str, list[BitcoinUTXO]] = {}
        self.transactions: dict[str, BitcoinTx] = {}
        self.tip = 100
        self.fee_rates = FeeRates.model_validate(REGTEST_FEE_RATES)
        self.broadcasts: list[str] = []

    async def get_utxos(self, address: str, amount: int | None = None) -> list[BitcoinUTXO]:
        return select_utxos(self.utxos.get(address, []), amount)

    async def get_transaction(self, txid: str) -> BitcoinTx:
        if txid not in self.transactions:
            raise NetworkError(f"Transaction {txid} not found")
        return self.transactions[txid]

    async def get_transaction_hex(self, txid: str) -> str:
        raise NetworkError(f"Transaction {txid} not found")

    async def broadcast(self, tx_hex: str) -> str:
        self.broadcasts.append(tx_hex)
        return get_txid(tx_hex)

    async def get_fee_rates(self) -> FeeRates:
        return self.fee_rates

    async def get_latest_tip(self) -> int:
        return self.tip

    def fund(self, address: str, value: int, height: int | None = 100, txid: str = "") -> None:
        """Add a UTXO to ``address``; ``height=None`` leaves it unconfirmed."""
        utxo = BitcoinUTXO(
            txid=txid or sha256(f"{address}:{value}:{height}".encode()).hex(),
            vout=0,
            value=value,
            status=TxStatus(confirmed=height is not None, block_height=height),
        )
        self.utxos.setdefault(address, []).append(utxo)


@pytest.fixture
def provider() -> InMemoryProvider:
    return InMemoryProvider()


@pytest.fixture
def initiator_wallet(provider: InMemoryProvider) -> KeyWallet:
    return KeyWallet(INITIATOR_KEY, provider)


@pytest.fixture
def redeemer_wallet(provider: InMemoryProvider) -> KeyWallet:
    return KeyWallet(REDEEMER_KEY, provider)
