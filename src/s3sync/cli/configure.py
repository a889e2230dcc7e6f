"""Configuration commands for s3sync CLI.

Commands:
- init: Write the sync configuration
- config: Show the current configuration
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from s3sync.cli.config import get_config_file, load_config, save_config
from s3sync.core.config import SyncConfig


@click.command()
@click.option("--bucket", default="", help="Target bucket name.")
@click.option(
    "--folder",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Folder to sync (default: current directory).",
)
@click.option("--region", default="us-east-1", show_default=True, help="Bucket region.")
@click.option("--endpoint-url", default=None, help="Custom S3 endpoint (MinIO, OVH...).")
@click.option(
    "--storage",
    type=click.Choice(["s3", "local"]),
    default="s3",
    show_default=True,
    help="Object store backend.",
)
@click.option(
    "--local-store-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the 'local' backend.",
)
@click.option(
    "--filter",
    "filters",
    multiple=True,
    help="Only sync files ending with this suffix (repeatable).",
)
@click.option("--deep", is_flag=True, help="Upload to the archival tier by default.")
@click.option("--force", is_flag=True, help="Overwrite an existing configuration.")
def init(
    bucket: str,
    folder: Path | None,
    region: str,
    endpoint_url: str | None,
    storage: str,
    local_store_path: Path | None,
    filters: tuple[str, ...],
    deep: bool,
    force: bool,
) -> None:
    """Initialize s3sync for a folder and a bucket."""
    config_file = get_config_file()
    if config_file.exists() and not force:
        click.echo("Error: s3sync already initialized.", err=True)
        click.echo(f"Config exists at: {config_file}", err=True)
        click.echo("\nTo start over, run:")
        click.echo("  s3sync init --force ...")
        sys.exit(1)

    sync_folder = (folder or Path.cwd()).expanduser().resolve()
    if not sync_folder.is_dir():
        click.echo(f"Error: Folder not found: {sync_folder}", err=True)
        sys.exit(1)

    store_path = None
    if local_store_path is not None:
        store_path = str(local_store_path.expanduser().resolve())

    try:
        config = SyncConfig(
            sync_folder=str(sync_folder),
            bucket=bucket,
            region=region,
            endpoint_url=endpoint_url,
            storage=storage,
            local_store_path=store_path,
            filters=list(filters),
            deep=deep,
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    save_config(config.to_dict())

    click.echo("s3sync initialized successfully!")
    click.echo(f"Sync folder: {config.sync_folder}")
    if config.storage == "s3":
        click.echo(f"Bucket: {config.bucket} ({config.region})")
    else:
        click.echo(f"Local store: {config.local_store_path or './objects'}")
    if config.filters:
        click.echo(f"Filters: {', '.join(config.filters)}")


@click.command("config")
def show_config() -> None:
    """Show the current configuration."""
    config = load_config()
    if not config:
        click.echo("Error: s3sync not initialized. Run 's3sync init' first.", err=True)
        sys.exit(1)
    click.echo(json.dumps(config, indent=2))
