"""
Tests for executor configuration.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from pydantic import ValidationError
from swapcore.models import NetworkType, Urgency
from swapcore.settings import DEFAULT_MEMPOOL_URLS, SwapSettings, reset_settings

from swapexecutor.config import ExecutorConfig, build_executor_config


@pytest.fixture(autouse=True)
def isolated_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Point settings at an empty data directory."""
    monkeypatch.setenv("SWAP_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("SWAP_CONFIG_FILE", raising=False)
    reset_settings()
    yield
    reset_settings()


def test_defaults() -> None:
    """Test that an empty configuration resolves to mainnet defaults."""
    config = build_executor_config(SwapSettings())

    assert config.network == NetworkType.MAINNET
    assert config.provider_urls == DEFAULT_MEMPOOL_URLS["mainnet"]
    assert config.orderbook_url == "https://api.garden.finance"
    assert config.block_number_network == "mainnet"
    assert config.fee_urgency == Urgency.MEDIUM
    assert config.post_refund_sacp
    assert not config.secret_management_enabled


def test_values_from_settings(tmp_path: Path) -> None:
    """Test that settings sections are mapped onto the executor config."""
    settings = SwapSettings(
        bitcoin={"network": "testnet", "provider_urls": ["https://esplora.test/api"]},
        orderbook={
            "url": "https://orderbook.test",
            "relay_url": "https://relay.test",
            "user_id": "0xabc",
            "api_key": "key",
        },
        executor={"digest_key": "11" * 32, "poll_interval_ms": 1_000, "post_refund_sacp": False},
    )

    config = build_executor_config(settings)

    assert config.network == NetworkType.TESTNET
    assert config.provider_urls == ["https://esplora.test/api"]
    assert config.orderbook_url == "https://orderbook.test"
    assert config.relay_url == "https://relay.test"
    assert config.user_id == "0xabc"
    assert config.api_key is not None
    assert config.api_key.get_secret_value() == "key"
    assert config.poll_interval_ms == 1_000
    assert not config.post_refund_sacp
    assert config.secret_management_enabled
    assert config.block_number_network == "testnet"
    assert config.data_dir == tmp_path


def test_cli_overrides() -> None:
    """Test that CLI arguments win over settings."""
    settings = SwapSettings(orderbook={"user_id": "0xabc"}, executor={"digest_key": "11" * 32})

    config = build_executor_config(
        settings,
        orderbook_url="https://other.test",
        user_id="0xdef",
        provider_urls="https://a.test/api, https://b.test/api,",
        poll_interval_ms=250,
        digest_key="22" * 32,
        bitcoin_private_key="33" * 32,
    )

    assert config.orderbook_url == "https://other.test"
    assert config.user_id == "0xdef"
    assert config.provider_urls == ["https://a.test/api", "https://b.test/api"]
    assert config.poll_interval_ms == 250
    assert config.digest_key is not None
    assert config.digest_key.get_secret_value() == "22" * 32
    assert config.bitcoin_private_key is not None
    assert config.bitcoin_private_key.get_secret_value() == "33" * 32


def test_network_override_uses_network_defaults() -> None:
    """Test that overriding the network drops the configured network's provider URLs."""
    settings = SwapSettings(bitcoin={"provider_urls": ["https://mainnet-only.test/api"]})

    config = build_executor_config(settings, network=NetworkType.SIGNET)

    assert config.network == NetworkType.SIGNET
    assert config.provider_urls == DEFAULT_MEMPOOL_URLS["signet"]
    assert config.block_number_network == "testnet"


def test_same_network_keeps_configured_urls() -> None:
    settings = SwapSettings(bitcoin={"provider_urls": ["https://mine.test/api"]})
    config = build_executor_config(settings, network=NetworkType.MAINNET)
    assert config.provider_urls == ["https://mine.test/api"]


def test_poll_interval_too_small() -> None:
    """Test that a poll interval below 100 ms is rejected."""
    with pytest.raises(ValidationError):
        ExecutorConfig(poll_interval_ms=50)
    with pytest.raises(ValueError):
        build_executor_config(SwapSettings(), poll_interval_ms=50)
