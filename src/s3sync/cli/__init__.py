"""Command-line interface for s3sync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- init: Configure the sync folder and bucket
- config: Show the current configuration
- sync: Upload new and changed files
- reconcile: Resolve transfers left open by an interrupted sync
- status: Show upload status
"""

from __future__ import annotations

import click

from s3sync.cli.config import (
    get_config_dir,
    get_config_file,
    get_state_db,
    load_config,
    require_sync_config,
    save_config,
)
from s3sync.cli.configure import init, show_config
from s3sync.cli.status import status
from s3sync.cli.sync import reconcile, sync


@click.group()
@click.version_option(package_name="s3sync")
def cli() -> None:
    """s3sync - Resumable folder upload to S3 with automatic file splitting."""


# Configuration commands
cli.add_command(init)
cli.add_command(show_config)

# Sync commands
cli.add_command(sync)
cli.add_command(reconcile)
cli.add_command(status)

__all__ = [
    "cli",
    "get_config_dir",
    "get_config_file",
    "get_state_db",
    "load_config",
    "require_sync_config",
    "save_config",
]
