"""
Root pytest configuration for all swap executor tests.

Every test runs against an empty data directory and a fresh settings
instance, so a real ``~/.swap-executor/config.toml`` or exported
``BITCOIN__*`` / ``ORDERBOOK__*`` / ``EXECUTOR__*`` variables never leak
into a test.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Generator
from pathlib import Path

import pytest
from loguru import logger
from swapcore.settings import reset_settings

SETTINGS_ENV_PREFIXES = ("BITCOIN__", "ORDERBOOK__", "EXECUTOR__", "LOGGING__")


@pytest.fixture(autouse=True)
def isolated_swap_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    data_dir = tmp_path / "swap-data"
    monkeypatch.setenv("SWAP_DATA_DIR", str(data_dir))
    monkeypatch.delenv("SWAP_CONFIG_FILE", raising=False)
    for name in list(os.environ):
        if name.startswith(SETTINGS_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    reset_settings()

    yield

    reset_settings()
    # CLI tests point the log sink at a stream CliRunner closes afterwards
    logger.remove()
    logger.add(sys.stderr, level="DEBUG")
