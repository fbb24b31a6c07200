"""
Swap executor configuration.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr
from swapcore.constants import DEFAULT_POLL_INTERVAL_MS
from swapcore.models import NetworkType, Urgency
from swapcore.settings import SwapSettings


class ExecutorConfig(BaseModel):
    network: NetworkType = NetworkType.MAINNET
    data_dir: Path | None = None

    orderbook_url: str = "https://api.garden.finance"
    info_url: str = "https://info.garden.finance"
    relay_url: str | None = None
    user_id: str = ""
    api_key: SecretStr | None = None
    request_timeout: float = Field(default=30.0, gt=0.0)

    provider_urls: list[str] = Field(default_factory=list)
    fee_urgency: Urgency = Urgency.MEDIUM
    bitcoin_private_key: SecretStr | None = None

    poll_interval_ms: int = Field(default=DEFAULT_POLL_INTERVAL_MS, ge=100)
    digest_key: SecretStr | None = None
    post_refund_sacp: bool = True

    model_config = {"frozen": False}

    @property
    def secret_management_enabled(self) -> bool:
        return self.digest_key is not None

    @property
    def block_number_network(self) -> str:
        """Network name of the block-number API (``mainnet`` or ``testnet``)."""
        return "mainnet" if self.network == NetworkType.MAINNET else "testnet"


def build_executor_config(
    settings: SwapSettings,
    # CLI overrides (None means use settings value)
    network: NetworkType | None = None,
    orderbook_url: str | None = None,
    user_id: str | None = None,
    provider_urls: str | None = None,
    poll_interval_ms: int | None = None,
    digest_key: str | None = None,
    bitcoin_private_key: str | None = None,
) -> ExecutorConfig:
    """
    Build ExecutorConfig from unified settings with CLI overrides.

    CLI arguments (when not None) override settings from config file and env vars.
    """
    effective_network = network if network is not None else settings.bitcoin.network

    if provider_urls:
        effective_provider_urls = [u.strip() for u in provider_urls.split(",") if u.strip()]
    elif network is not None and network != settings.bitcoin.network:
        # Network was overridden via CLI, use defaults for that network
        from swapcore.settings import DEFAULT_MEMPOOL_URLS

        effective_provider_urls = DEFAULT_MEMPOOL_URLS.get(effective_network.value, [])
    else:
        effective_provider_urls = settings.get_provider_urls()

    effective_digest_key = (
        SecretStr(digest_key) if digest_key is not None else settings.executor.digest_key
    )
    effective_private_key = (
        SecretStr(bitcoin_private_key)
        if bitcoin_private_key is not None
        else settings.bitcoin.private_key
    )

    return ExecutorConfig(
        network=effective_network,
        data_dir=settings.get_data_dir(),
        orderbook_url=orderbook_url if orderbook_url is not None else settings.orderbook.url,
        info_url=settings.orderbook.info_url,
        relay_url=settings.orderbook.relay_url,
        user_id=user_id if user_id is not None else settings.orderbook.user_id,
        api_key=settings.orderbook.api_key,
        request_timeout=settings.orderbook.request_timeout,
        provider_urls=effective_provider_urls,
        fee_urgency=settings.bitcoin.fee_urgency,
        bitcoin_private_key=effective_private_key,
        poll_interval_ms=(
            poll_interval_ms if poll_interval_ms is not None else settings.executor.poll_interval_ms
        ),
        digest_key=effective_digest_key,
        post_refund_sacp=settings.executor.post_refund_sacp,
    )
