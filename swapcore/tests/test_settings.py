"""
Tests for the unified settings module.
"""

from __future__ import annotations

import tomllib
from collections.abc import Generator
from pathlib import Path

import pytest

from swapcore.models import NetworkType, Urgency
from swapcore.paths import get_config_path, get_default_data_dir
from swapcore.settings import (
    DEFAULT_MEMPOOL_URLS,
    SwapSettings,
    ensure_config_file,
    generate_config_template,
    get_settings,
    reset_settings,
)


@pytest.fixture(autouse=True)
def reset_settings_fixture() -> Generator[None, None, None]:
    """Reset settings before and after each test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def temp_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a temporary data directory and set it as SWAP_DATA_DIR."""
    data_dir = tmp_path / ".swap-executor"
    data_dir.mkdir(parents=True)
    monkeypatch.setenv("SWAP_DATA_DIR", str(data_dir))
    monkeypatch.delenv("SWAP_CONFIG_FILE", raising=False)
    return data_dir


class TestPaths:
    """Tests for data directory resolution."""

    def test_data_dir_from_env(self, temp_data_dir: Path) -> None:
        assert get_default_data_dir() == temp_data_dir
        assert get_config_path() == temp_data_dir / "config.toml"

    def test_config_file_env_wins(
        self, temp_data_dir: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        custom = tmp_path / "custom.toml"
        monkeypatch.setenv("SWAP_CONFIG_FILE", str(custom))
        assert get_config_path() == custom


class TestConfigTemplate:
    """Tests for config template generation."""

    def test_generate_config_template(self) -> None:
        """Test that config template is generated correctly."""
        template = generate_config_template()

        assert "# Swap Executor Configuration" in template
        assert "# Priority (highest to lowest):" in template
        for section in ("[bitcoin]", "[orderbook]", "[executor]", "[logging]"):
            assert section in template

        assert '# url = "https://api.garden.finance"' in template
        assert "# poll_interval_ms = 5000" in template
        assert "# digest_key = " in template
        assert "# post_refund_sacp = true" in template
        assert '# network = "mainnet"' in template

    def test_template_sets_nothing(self) -> None:
        """All settings in the template are commented out."""
        parsed = tomllib.loads(generate_config_template())
        assert all(value == {} for value in parsed.values())

    def test_ensure_config_file_creates_template(self, temp_data_dir: Path) -> None:
        config_path = temp_data_dir / "config.toml"
        assert not config_path.exists()

        result = ensure_config_file(temp_data_dir)

        assert result == config_path
        assert "# Swap Executor Configuration" in config_path.read_text()

    def test_ensure_config_file_does_not_overwrite(self, temp_data_dir: Path) -> None:
        config_path = temp_data_dir / "config.toml"
        config_path.write_text("# Custom config\n[orderbook]\nuser_id = 'me'\n")

        ensure_config_file(temp_data_dir)

        assert "# Custom config" in config_path.read_text()


class TestSettingsDefaults:
    """Tests for default settings values."""

    def test_defaults(self, temp_data_dir: Path) -> None:
        settings = SwapSettings()

        assert settings.bitcoin.network == NetworkType.MAINNET
        assert settings.bitcoin.fee_urgency == Urgency.MEDIUM
        assert settings.bitcoin.private_key is None
        assert settings.orderbook.url == "https://api.garden.finance"
        assert settings.orderbook.relay_url is None
        assert settings.executor.poll_interval_ms == 5000
        assert settings.executor.digest_key is None
        assert settings.executor.post_refund_sacp is True
        assert settings.logging.level == "INFO"
        assert settings.get_data_dir() == temp_data_dir

    def test_provider_urls_follow_network(
        self, temp_data_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("BITCOIN__NETWORK", "testnet")
        settings = SwapSettings()
        assert settings.get_provider_urls() == DEFAULT_MEMPOOL_URLS["testnet"]


class TestSettingsFromEnv:
    """Tests for loading settings from environment variables."""

    def test_env_override(self, temp_data_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ORDERBOOK__URL", "http://localhost:4426")
        monkeypatch.setenv("ORDERBOOK__USER_ID", "0xuser")
        monkeypatch.setenv("EXECUTOR__POLL_INTERVAL_MS", "1000")
        monkeypatch.setenv("EXECUTOR__DIGEST_KEY", "11" * 32)

        settings = SwapSettings()

        assert settings.orderbook.url == "http://localhost:4426"
        assert settings.orderbook.user_id == "0xuser"
        assert settings.executor.poll_interval_ms == 1000
        assert settings.executor.digest_key is not None
        assert settings.executor.digest_key.get_secret_value() == "11" * 32

    def test_invalid_poll_interval(
        self, temp_data_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("EXECUTOR__POLL_INTERVAL_MS", "10")
        with pytest.raises(ValueError):
            SwapSettings()


class TestSettingsFromToml:
    """Tests for loading settings from the TOML config file."""

    def test_toml_values(self, temp_data_dir: Path) -> None:
        (temp_data_dir / "config.toml").write_text(
            "[bitcoin]\n"
            'network = "regtest"\n'
            'provider_urls = ["http://localhost:30000"]\n'
            "\n"
            "[orderbook]\n"
            'user_id = "toml-user"\n'
        )

        settings = SwapSettings()

        assert settings.bitcoin.network == NetworkType.REGTEST
        assert settings.get_provider_urls() == ["http://localhost:30000"]
        assert settings.orderbook.user_id == "toml-user"

    def test_env_beats_toml(self, temp_data_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (temp_data_dir / "config.toml").write_text('[orderbook]\nuser_id = "toml-user"\n')
        monkeypatch.setenv("ORDERBOOK__USER_ID", "env-user")

        assert SwapSettings().orderbook.user_id == "env-user"

    def test_overrides_beat_env(
        self, temp_data_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LOGGING__LEVEL", "DEBUG")
        settings = get_settings(logging={"level": "WARNING"})
        assert settings.logging.level == "WARNING"

    def test_invalid_toml(self, temp_data_dir: Path) -> None:
        (temp_data_dir / "config.toml").write_text("[orderbook\nuser_id = ")
        with pytest.raises(ValueError, match="Invalid config file"):
            SwapSettings()


class TestGetSettings:
    """Tests for the cached settings instance."""

    def test_cached_until_reset(self, temp_data_dir: Path) -> None:
        first = get_settings()
        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first
