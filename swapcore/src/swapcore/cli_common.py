"""
Common CLI components for swap executor tooling.

Keeps typer out of swapcore: CLI modules declare their own options and call
these helpers to set up logging and resolve settings.
"""

from __future__ import annotations

import sys

from loguru import logger

from swapcore.settings import SwapSettings, get_settings, reset_settings


def setup_logging(level: str = "INFO") -> None:
    """
    Configure loguru logging with consistent format.

    Args:
        level: Log level (TRACE, DEBUG, INFO, WARNING, ERROR)
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level=level.upper(),
        colorize=True,
    )


def setup_cli(log_level: str | None = None, **overrides: object) -> SwapSettings:
    """
    Load settings and configure logging for a CLI command.

    Args:
        log_level: CLI log level override (settings value if None)
        **overrides: Settings overrides coming from CLI options

    Returns:
        Resolved settings
    """
    reset_settings()
    settings = get_settings(**overrides) if overrides else get_settings()
    setup_logging(log_level or settings.logging.level)
    return settings


def redact(value: str, settings: SwapSettings | None = None) -> str:
    """Hide a sensitive value unless sensitive logging is enabled."""
    if settings is not None and settings.logging.sensitive:
        return value
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-4:]}"
