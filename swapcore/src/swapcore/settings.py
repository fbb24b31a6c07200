"""
Settings shared by every swap executor command.

Values are resolved per field, first match wins:
1. Explicit overrides (CLI arguments, passed to the constructor)
2. Environment variables named SECTION__KEY, e.g. ORDERBOOK__USER_ID
3. The TOML config file, [section] key = value
4. Built-in defaults

Typical use:
    settings = get_settings()
    settings.orderbook.url
    settings.bitcoin.network
"""

from __future__ import annotations

import tomllib
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from swapcore.constants import DEFAULT_POLL_INTERVAL_MS
from swapcore.models import NetworkType, Urgency
from swapcore.paths import get_config_path, get_default_data_dir

DEFAULT_MEMPOOL_URLS: dict[str, list[str]] = {
    "mainnet": ["https://mempool.space/api", "https://blockstream.info/api"],
    "testnet": ["https://mempool.space/testnet4/api"],
    "signet": ["https://mempool.space/signet/api"],
    "regtest": ["http://127.0.0.1:30000"],
}


class BitcoinSettings(BaseModel):
    """Bitcoin chain-data provider configuration."""

    network: NetworkType = Field(
        default=NetworkType.MAINNET,
        description="Bitcoin network: mainnet, testnet, signet, regtest",
    )
    provider_urls: list[str] = Field(
        default_factory=list,
        description="Esplora API base URLs tried in order (network default if empty)",
    )
    fee_urgency: Urgency = Field(
        default=Urgency.MEDIUM,
        description="Fee urgency for suggested fees: slow, medium, fast",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP timeout in seconds for chain-data requests",
    )
    private_key: SecretStr | None = Field(
        default=None,
        description="Hex private key of the Taproot key-path wallet used for HTLC spends",
    )


class OrderbookSettings(BaseModel):
    """Orderbook and relay API configuration."""

    url: str = Field(
        default="https://api.garden.finance",
        description="Orderbook API base URL",
    )
    info_url: str = Field(
        default="https://info.garden.finance",
        description="Block-number info API base URL",
    )
    relay_url: str | None = Field(
        default=None,
        description="Relay API base URL for Bitcoin redeem broadcasts (orderbook URL if unset)",
    )
    user_id: str = Field(
        default="",
        description="Account the pending orders are fetched for",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="API key sent with relay requests",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP timeout in seconds for orderbook requests",
    )


class ExecutorSettings(BaseModel):
    """Execution loop configuration."""

    poll_interval_ms: int = Field(
        default=DEFAULT_POLL_INTERVAL_MS,
        ge=100,
        description="Interval between pending-order polls in milliseconds",
    )
    digest_key: SecretStr | None = Field(
        default=None,
        description="Hex digest key used to derive order secrets (redeems disabled if unset)",
    )
    post_refund_sacp: bool = Field(
        default=True,
        description="Post instant-refund SACP signatures for Bitcoin source swaps",
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        description="Log level: TRACE, DEBUG, INFO, WARNING, ERROR",
    )
    sensitive: bool = Field(
        default=False,
        description="Enable sensitive logging (secrets, keys)",
    )


class SwapSettings(BaseSettings):
    """Root settings model; see the module docstring for source priority."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    data_dir: Path | None = Field(
        default=None,
        description="Data directory (defaults to ~/.swap-executor)",
    )

    bitcoin: BitcoinSettings = Field(default_factory=BitcoinSettings)
    orderbook: OrderbookSettings = Field(default_factory=OrderbookSettings)
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls),
        )

    def get_data_dir(self) -> Path:
        return self.data_dir if self.data_dir is not None else get_default_data_dir()

    def get_provider_urls(self) -> list[str]:
        """Get chain-data provider URLs, using network defaults if not set."""
        if self.bitcoin.provider_urls:
            return self.bitcoin.provider_urls
        return DEFAULT_MEMPOOL_URLS.get(self.bitcoin.network.value, [])


def load_config_file(config_path: Path) -> dict[str, Any]:
    """
    Read a TOML config file into nested section dicts.

    A missing file is an empty config.

    Raises:
        ValueError: If the file is not valid TOML
    """
    if not config_path.exists():
        logger.debug(f"No config file at {config_path}")
        return {}
    try:
        config = tomllib.loads(config_path.read_text())
    except tomllib.TOMLDecodeError as e:
        logger.error(f"Cannot parse {config_path}: {e}")
        raise ValueError(f"Invalid config file {config_path}: {e}") from e
    logger.info(f"Loaded config from {config_path}")
    return config


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """
    Lowest-priority settings source backed by the TOML config file.

    The file is ``$SWAP_CONFIG_FILE`` if set, else ``config.toml`` in the data
    directory.
    """

    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        super().__init__(settings_cls)
        self._config = load_config_file(get_config_path())

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        value = self._config.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        return self._config


# =============================================================================
# Config file template
# =============================================================================

CONFIG_TEMPLATE_HEADER = """\
# Swap Executor Configuration
#
# Every setting below is commented out and shows its built-in default.
# Uncomment a line to override it.
#
# Priority (highest to lowest):
#   1. CLI arguments
#   2. Environment variables
#   3. This config file
#   4. Built-in defaults
#
# Environment variables name a setting as SECTION__KEY, e.g.
#   ORDERBOOK__URL=https://api.garden.finance
#   EXECUTOR__POLL_INTERVAL_MS=5000

# Data directory, defaults to ~/.swap-executor or $SWAP_DATA_DIR
# data_dir = 
"""

CONFIG_SECTIONS: tuple[tuple[str, str, type[BaseModel]], ...] = (
    ("bitcoin", "Bitcoin chain data", BitcoinSettings),
    ("orderbook", "Orderbook and relay", OrderbookSettings),
    ("executor", "Executor", ExecutorSettings),
    ("logging", "Logging", LoggingSettings),
)


def _toml_literal(value: Any) -> str:
    """Render a default as the TOML literal shown in the template ('' when unset)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, list):
        return "[" + ", ".join(_toml_literal(item) for item in value) + "]"
    return str(value)


def generate_config_template() -> str:
    """
    Render the commented-out config file written by ``config-init``.

    Every field of every section is listed with its description and default.
    """
    blocks = [CONFIG_TEMPLATE_HEADER]
    for section, title, model_cls in CONFIG_SECTIONS:
        fields = []
        for field_name, field_info in model_cls.model_fields.items():
            default = (
                field_info.default_factory()  # type: ignore[call-arg]
                if field_info.default_factory is not None
                else field_info.default
            )
            comment = f"# {field_info.description}\n" if field_info.description else ""
            fields.append(f"{comment}# {field_name} = {_toml_literal(default)}\n")
        rule = "# " + "=" * 60
        blocks.append(f"{rule}\n# {title}\n{rule}\n[{section}]\n\n" + "\n".join(fields))
    return "\n".join(blocks)


def ensure_config_file(data_dir: Path | None = None) -> Path:
    """
    Write the config template into ``data_dir`` unless a config file is
    already there.

    Returns:
        Path to ``config.toml`` in the data directory
    """
    data_dir = data_dir if data_dir is not None else get_default_data_dir()
    config_path = data_dir / "config.toml"
    if config_path.exists():
        return config_path

    data_dir.mkdir(parents=True, exist_ok=True)
    config_path.write_text(generate_config_template())
    logger.info(f"Wrote config template to {config_path}")
    return config_path


_settings: SwapSettings | None = None


def get_settings(**overrides: Any) -> SwapSettings:
    """
    Process-wide settings, loaded on first use.

    Passing ``overrides`` reloads the settings with them applied on top of
    every other source.
    """
    global _settings
    if _settings is None or overrides:
        _settings = SwapSettings(**overrides)
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads every source."""
    global _settings
    _settings = None


__all__ = [
    "SwapSettings",
    "BitcoinSettings",
    "OrderbookSettings",
    "ExecutorSettings",
    "LoggingSettings",
    "DEFAULT_MEMPOOL_URLS",
    "get_settings",
    "reset_settings",
    "generate_config_template",
    "ensure_config_file",
]
