"""Status command for s3sync CLI."""

from __future__ import annotations

from datetime import datetime

import click

from s3sync.cli.config import get_state_db, require_sync_config


@click.command()
def status() -> None:
    """Show upload status recorded in the ledger."""
    from s3sync.state import Ledger

    config = require_sync_config()

    ledger = Ledger(get_state_db())
    try:
        counts = ledger.summary()
        last_sync_at = ledger.get_last_sync_at()
        open_transfers = ledger.list_transfers(open_only=True)
        pending = {t.transfer_id: len(ledger.pending_parts(t.transfer_id)) for t in open_transfers}
    finally:
        ledger.close()

    click.echo(f"Sync folder: {config.sync_folder}")
    if last_sync_at:
        click.echo(f"Last sync: {datetime.fromtimestamp(last_sync_at):%Y-%m-%d %H:%M:%S}")
    else:
        click.echo("Last sync: never")

    click.echo(f"Files: {counts['files_uploaded']} uploaded, {counts['files_pending']} pending")
    click.echo(
        f"Parts: {counts['parts_uploaded']} uploaded, {counts['parts_pending']} pending "
        f"({counts['transfers_complete']} complete transfers)"
    )

    if open_transfers:
        click.echo(click.style("\nOpen transfers:", fg="yellow"))
        for transfer in open_transfers:
            click.echo(
                f"  {transfer.source_path} [{transfer.status.value}] "
                f"{pending[transfer.transfer_id]} parts pending ({transfer.transfer_id})"
            )
