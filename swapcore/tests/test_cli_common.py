"""
Tests for the CLI common module.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from loguru import logger

from swapcore.cli_common import redact, setup_cli, setup_logging
from swapcore.settings import get_settings, reset_settings


@pytest.fixture(autouse=True)
def reset_settings_fixture() -> Generator[None, None, None]:
    """Reset settings before and after each test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("SWAP_DATA_DIR", str(tmp_path))
    return tmp_path


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_replaces_handlers(self) -> None:
        setup_logging("DEBUG")
        assert len(logger._core.handlers) == 1  # type: ignore[attr-defined]

    def test_lowercase_level(self) -> None:
        setup_logging("warning")
        assert len(logger._core.handlers) == 1  # type: ignore[attr-defined]


class TestSetupCli:
    """Tests for setup_cli."""

    def test_returns_cached_settings(self) -> None:
        settings = setup_cli("INFO")
        assert settings is get_settings()

    def test_overrides(self, tmp_path: Path) -> None:
        settings = setup_cli(None, data_dir=tmp_path / "custom")
        assert settings.get_data_dir() == tmp_path / "custom"


class TestRedact:
    """Tests for redact."""

    def test_short_values_fully_hidden(self) -> None:
        assert redact("secret") == "***"

    def test_long_values_keep_edges(self) -> None:
        assert redact("0123456789abcdef") == "0123...cdef"

    def test_sensitive_logging_shows_value(self) -> None:
        settings = get_settings(logging={"sensitive": True})
        assert redact("0123456789abcdef", settings) == "0123456789abcdef"
