"""
HTTP clients for the orderbook, relay and block-number APIs.

Every orderbook/relay endpoint wraps its payload as
``{"status": "Ok" | "Error", "result": ..., "error": ...}``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from swapcore.constants import PENDING_ORDERS_PAGE_SIZE
from swapcore.errors import AlreadySettledError, NetworkError, SwapError, is_already_settled
from swapcore.models import MatchedOrder
from swapcore.tasks import ms_to_seconds, run_periodic_task

OrdersCallback = Callable[[list[MatchedOrder]], Coroutine[Any, Any, None]]


class APIResponse(BaseModel):
    status: str = "Ok"
    result: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "Ok" and not self.error


class PaginatedData(BaseModel):
    data: list[Any] = Field(default_factory=list)
    page: int = 1
    total_pages: int = 1
    total_items: int = 0
    per_page: int = 0


def _unwrap(payload: Any, endpoint: str) -> Any:
    response = APIResponse.model_validate(payload)
    if not response.ok:
        message = response.error or f"{endpoint}: unexpected status {response.status}"
        if is_already_settled(message):
            raise AlreadySettledError(message)
        raise NetworkError(message)
    return response.result


class OrderbookClient:
    """
    Client for the orderbook and its relayer endpoints.

    Args:
        base_url: Orderbook API base URL
        relay_url: Relay base URL for redeem broadcasts (``base_url`` if None)
        api_key: Key sent as the ``api-key`` header
        timeout: Request timeout in seconds
        client: Shared httpx client (one is created if None)
    """

    def __init__(
        self,
        base_url: str,
        relay_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.relay_url = (relay_url or base_url).rstrip("/")
        self.api_key = api_key
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["api-key"] = self.api_key
        return headers

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self.client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise NetworkError(
                f"{method} {url} returned non-JSON response ({response.status_code})"
            ) from e

        if isinstance(payload, dict) and "status" in payload:
            return _unwrap(payload, url)
        if response.is_error:
            raise NetworkError(f"{method} {url} failed with status {response.status_code}")
        return payload

    async def get_pending_orders(
        self, user_id: str, per_page: int = PENDING_ORDERS_PAGE_SIZE
    ) -> list[MatchedOrder]:
        """
        Fetch the user's pending matched orders.

        Orders that fail validation are skipped with a warning.
        """
        result = await self._request(
            "GET",
            f"{self.base_url}/user/{user_id}/matched",
            params={"status": "pending", "per_page": per_page},
        )
        page = PaginatedData.model_validate(result or {})

        orders: list[MatchedOrder] = []
        for item in page.data:
            try:
                orders.append(MatchedOrder.model_validate(item))
            except PydanticValidationError as e:
                order_id = item.get("create_order", {}).get("create_id", "?")
                logger.warning(f"Skipping malformed order {order_id}: {e.error_count()} errors")
        return orders

    def subscribe_pending_orders(
        self,
        user_id: str,
        callback: OrdersCallback,
        interval_ms: int,
        per_page: int = PENDING_ORDERS_PAGE_SIZE,
    ) -> Callable[[], Awaitable[None]]:
        """
        Poll pending orders and hand every batch to ``callback``.

        The first fetch happens immediately. A tick only starts after the
        previous one (fetch and callback) has finished. Fetch errors are
        logged and the poll continues on the next tick.

        Returns:
            Coroutine function stopping the subscription. A callback that is
            already running is awaited to completion, never cancelled.
        """
        stopped = False
        in_callback = False

        async def fetch() -> None:
            nonlocal in_callback
            try:
                orders = await self.get_pending_orders(user_id, per_page)
            except SwapError as e:
                logger.error(f"Error fetching orders: {e}")
                return
            if stopped:
                return
            in_callback = True
            try:
                await callback(orders)
            finally:
                in_callback = False

        task = asyncio.create_task(
            run_periodic_task(
                "pending-orders",
                fetch,
                ms_to_seconds(interval_ms),
                run_immediately=True,
                running_check=lambda: not stopped,
            )
        )

        async def unsubscribe() -> None:
            nonlocal stopped
            stopped = True
            # Idle between polls or mid-fetch: nothing to finish
            if not in_callback:
                task.cancel()
            await asyncio.wait({task})

        return unsubscribe

    async def get_instant_refund_hash(self, order_id: str) -> list[str]:
        """Sighashes the user must sign for an instant refund of a Bitcoin source swap."""
        result = await self._request(
            "POST",
            f"{self.base_url}/relayer/bitcoin/instant-refund-hash",
            json={"order_id": order_id},
        )
        if not result:
            raise NetworkError(f"No instant refund hashes returned for order {order_id}")
        return list(result)

    async def post_instant_refund(self, order_id: str, signatures: list[str]) -> str:
        result = await self._request(
            "POST",
            f"{self.base_url}/relayer/bitcoin/instant-refund",
            json={"order_id": order_id, "signatures": signatures},
        )
        return str(result or "")

    async def broadcast_bitcoin_redeem(self, order_id: str, redeem_tx_hex: str) -> str:
        """Submit a signed Bitcoin redeem through the relay. Returns the txid."""
        result = await self._request(
            "POST",
            f"{self.relay_url}/bitcoin/redeem",
            json={"redeem_tx_bytes": redeem_tx_hex, "order_id": order_id},
        )
        if not result:
            raise NetworkError(f"Relay returned no txid for order {order_id}")
        return str(result)

    async def close(self) -> None:
        await self.client.aclose()


@runtime_checkable
class BlockNumberFetcher(Protocol):
    async def fetch_block_numbers(self) -> dict[str, int]: ...


class HttpBlockNumberFetcher:
    """Current block height of every supported chain from the info API."""

    def __init__(
        self,
        base_url: str,
        network: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = f"{base_url.rstrip('/')}/blocknumber/{network}"
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch_block_numbers(self) -> dict[str, int]:
        try:
            response = await self.client.get(self.url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise NetworkError(f"Failed to fetch block numbers: {e}") from e

        if not isinstance(data, dict):
            raise NetworkError("Failed to fetch block numbers: unexpected response")
        return {chain: int(number) for chain, number in data.items() if number is not None}

    async def close(self) -> None:
        await self.client.aclose()
