"""
Shared path utilities for swap executor data directories.
"""

from __future__ import annotations

import os
from pathlib import Path

DATA_DIR_ENV = "SWAP_DATA_DIR"
CONFIG_FILE_ENV = "SWAP_CONFIG_FILE"
DEFAULT_DATA_DIR_NAME = ".swap-executor"


def get_default_data_dir() -> Path:
    """
    Get the default data directory.

    Returns ~/.swap-executor or $SWAP_DATA_DIR if set.
    Creates the directory if it doesn't exist.
    """
    env_path = os.getenv(DATA_DIR_ENV)
    data_dir = Path(env_path) if env_path else Path.home() / DEFAULT_DATA_DIR_NAME

    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_config_path() -> Path:
    """
    Get the path to the config file without creating any directory.

    $SWAP_CONFIG_FILE wins over $SWAP_DATA_DIR/config.toml.
    """
    env_file = os.getenv(CONFIG_FILE_ENV)
    if env_file:
        return Path(env_file)
    env_path = os.getenv(DATA_DIR_ENV)
    data_dir = Path(env_path) if env_path else Path.home() / DEFAULT_DATA_DIR_NAME
    return data_dir / "config.toml"
