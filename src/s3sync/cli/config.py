"""Configuration utilities for s3sync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import click

from s3sync.core.config import SyncConfig


def get_config_dir() -> Path:
    """Get the configuration directory for s3sync.

    Returns:
        Path to ~/.s3sync or equivalent.
    """
    return Path.home() / ".s3sync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db() -> Path:
    """Get the path to the ledger database."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def require_sync_config() -> SyncConfig:
    """Load the sync configuration, exiting with status 1 if it is missing or invalid."""
    data = load_config()
    if not data.get("sync_folder"):
        click.echo("Error: s3sync not initialized. Run 's3sync init' first.", err=True)
        sys.exit(1)
    try:
        return SyncConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        click.echo(f"Error: Invalid configuration in {get_config_file()}: {e}", err=True)
        sys.exit(1)
