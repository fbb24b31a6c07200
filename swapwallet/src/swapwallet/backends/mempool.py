"""
Mempool.space / esplora API chain-data provider.
Works with public instances or self-hosted ones.
"""

from __future__ import annotations

import re
import time
from typing import Any

import httpx
from loguru import logger
from swapcore.constants import REGTEST_FEE_RATES
from swapcore.errors import NetworkError, ValidationError
from swapcore.models import BitcoinTx, BitcoinUTXO, FeeRates, NetworkType

from swapwallet.backends.base import ChainDataProvider, select_utxos

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


class MempoolProvider(ChainDataProvider):
    """
    Chain-data provider using the esplora REST API.

    Every request is tried against each base URL in order until one succeeds.
    UTXO lookups are cached briefly so building and re-signing a transaction
    does not hit the API repeatedly.
    """

    def __init__(
        self,
        base_urls: list[str] | str,
        network: NetworkType | str = NetworkType.MAINNET,
        timeout: float = 30.0,
        utxo_cache_ttl: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ):
        if isinstance(base_urls, str):
            base_urls = [base_urls]
        if not base_urls:
            raise ValueError("At least one provider URL is required")
        self.base_urls = [url.rstrip("/") for url in base_urls]
        self.network = NetworkType(network)
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.utxo_cache_ttl = utxo_cache_ttl
        self._utxo_cache: dict[str, tuple[float, list[BitcoinUTXO]]] = {}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        last_error: Exception | None = None
        for base_url in self.base_urls:
            try:
                response = await self.client.request(method, f"{base_url}{path}", **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPError as e:
                logger.debug(f"{method} {base_url}{path} failed: {e}")
                last_error = e
        raise NetworkError(f"{method} {path} failed on all providers: {last_error}") from last_error

    async def get_utxos(self, address: str, amount: int | None = None) -> list[BitcoinUTXO]:
        cached = self._utxo_cache.get(address)
        if cached and time.monotonic() - cached[0] < self.utxo_cache_ttl:
            return select_utxos(cached[1], amount)

        response = await self._request("GET", f"/address/{address}/utxo")
        utxos = [BitcoinUTXO.model_validate(item) for item in response.json()]
        self._utxo_cache[address] = (time.monotonic(), utxos)
        logger.debug(f"Found {len(utxos)} UTXOs for address {address}")
        return select_utxos(utxos, amount)

    def invalidate_utxo_cache(self, address: str | None = None) -> None:
        if address is None:
            self._utxo_cache.clear()
        else:
            self._utxo_cache.pop(address, None)

    async def get_transaction(self, txid: str) -> BitcoinTx:
        response = await self._request("GET", f"/tx/{txid}")
        return BitcoinTx.model_validate(response.json())

    async def get_transaction_hex(self, txid: str) -> str:
        response = await self._request("GET", f"/tx/{txid}/hex")
        return response.text.strip()

    async def broadcast(self, tx_hex: str) -> str:
        if not _HEX_RE.match(tx_hex):
            raise ValidationError("Invalid tx hex")
        response = await self._request("POST", "/tx", content=tx_hex)
        txid = response.text.strip()
        logger.info(f"Broadcast transaction: {txid}")
        self._utxo_cache.clear()
        return txid

    async def get_fee_rates(self) -> FeeRates:
        if self.network == NetworkType.REGTEST:
            return FeeRates.model_validate(REGTEST_FEE_RATES)

        response = await self._request("GET", "/v1/fees/recommended")
        data = response.json()
        # mempool.space occasionally reports 1 sat/vB as the fastest rate
        if data.get("fastestFee") == 1:
            return FeeRates(
                fastest_fee=2, half_hour_fee=2, hour_fee=2, economy_fee=2, minimum_fee=2
            )
        rates = FeeRates.model_validate(data)
        logger.debug(f"Fee rates: {rates}")
        return rates

    async def get_latest_tip(self) -> int:
        response = await self._request("GET", "/blocks/tip/height")
        return int(response.text.strip())

    async def get_transaction_times(self, txids: list[str]) -> list[int]:
        if not txids:
            return []
        params = [("txId[]", txid) for txid in txids]
        response = await self._request("GET", "/v1/transaction-times", params=params)
        return [int(t) * 1000 for t in response.json()]

    async def close(self) -> None:
        await self.client.aclose()
