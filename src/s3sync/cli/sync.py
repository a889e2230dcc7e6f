"""Sync commands for s3sync CLI.

Commands:
- sync: Upload new and changed files to the bucket
- reconcile: Resolve transfers left open by an interrupted run
"""

from __future__ import annotations

import logging
import sqlite3
import sys
import threading
import time

import click

from s3sync.cli.config import get_state_db, require_sync_config


def configure_logging(verbose: bool) -> None:
    """Route s3sync log records to stderr.

    Only warnings and errors are shown unless verbose is set.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    s3sync_logger = logging.getLogger("s3sync")
    for existing in s3sync_logger.handlers[:]:
        s3sync_logger.removeHandler(existing)
    s3sync_logger.addHandler(handler)
    s3sync_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    s3sync_logger.propagate = False


def sync_errors() -> tuple[type[Exception], ...]:
    """Errors that end a sync with a message instead of a traceback."""
    from botocore.exceptions import BotoCoreError, ClientError

    from s3sync.state import LedgerError
    from s3sync.sync import SyncError

    return (SyncError, LedgerError, OSError, sqlite3.Error, BotoCoreError, ClientError)


@click.command()
@click.option("--deep", is_flag=True, help="Upload to the archival storage tier.")
@click.option("--dry-run", is_flag=True, help="List changed files without uploading.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def sync(deep: bool, dry_run: bool, verbose: bool) -> None:
    """Upload new and changed files to the bucket.

    Files larger than the single-object limit are split into parts that
    are uploaded one by one. An interrupted sync resumes where it stopped.
    """
    from s3sync.state import Ledger
    from s3sync.storage import create_store
    from s3sync.sync import (
        BatchDriver,
        FileUnit,
        Reconciler,
        SplitCoordinator,
        UnitOutcome,
        UnitProgress,
        UploadOrchestrator,
        compute_diff,
        take_inventory,
    )

    config = require_sync_config()
    configure_logging(verbose)
    deep = deep or config.deep
    base_path = config.base_path
    errors = sync_errors()

    ledger = Ledger(get_state_db())
    try:
        try:
            store = create_store(config.storage_options())
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        click.echo(f"Syncing {base_path} to {store.location}")
        if deep:
            click.echo("Storage class: DEEP_ARCHIVE")

        def on_progress(progress: UnitProgress) -> None:
            prefix = f"[{progress.index}/{progress.total}]"
            if progress.outcome == UnitOutcome.UPLOADED:
                click.echo(f"  ↑ {prefix} {progress.path}")
            elif progress.outcome == UnitOutcome.SPLIT:
                click.echo(f"  ⇶ {prefix} {progress.path}: split into {progress.detail}")
            elif progress.outcome == UnitOutcome.SKIPPED and verbose:
                click.echo(f"  = {prefix} {progress.path}")
            elif progress.outcome == UnitOutcome.FAILED:
                click.echo(f"  ✗ {prefix} {progress.path}: {progress.detail}", err=True)

        def on_part_uploaded(unit: FileUnit) -> None:
            click.echo(f"      part {unit.sequence}: {unit.path}")

        cancel_event = threading.Event()
        try:
            report = Reconciler(ledger, store, base_path).reconcile()
            if report.changed:
                click.echo(
                    f"Reconciled: {report.parts_confirmed} parts confirmed, "
                    f"{len(report.completed)} transfers completed, "
                    f"{len(report.abandoned)} abandoned"
                )

            inventory = take_inventory(base_path, config.filters)
            diffs = compute_diff(inventory, ledger)

            if dry_run:
                for path in diffs:
                    click.echo(f"  ? {path}")
                click.echo(f"\n{len(diffs)} files to upload")
                return

            if not diffs:
                click.echo("No files to update!")
                ledger.set_last_sync_at(time.time())
                return

            driver = BatchDriver(
                orchestrator=UploadOrchestrator(
                    store, ledger, base_path,
                    on_part_uploaded=on_part_uploaded if verbose else None,
                ),
                coordinator=SplitCoordinator(
                    ledger, base_path, max_piece_size=config.max_object_size
                ),
                ledger=ledger,
                base_path=base_path,
                max_object_size=config.max_object_size,
                progress_callback=on_progress,
            )
            result = driver.upload_all(diffs, deep, cancel_event)

        except KeyboardInterrupt:
            cancel_event.set()
            click.echo("\nInterrupted. Run 's3sync sync' again to resume.", err=True)
            sys.exit(130)
        except errors as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        ledger.set_last_sync_at(time.time())
        click.echo(
            f"\nSync complete: {len(result.uploaded)} uploaded "
            f"({result.parts_uploaded} parts), {len(result.skipped)} skipped"
        )
    finally:
        ledger.close()


@click.command()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def reconcile(verbose: bool) -> None:
    """Resolve transfers left open by an interrupted sync."""
    from s3sync.state import Ledger
    from s3sync.storage import create_store
    from s3sync.sync import Reconciler

    config = require_sync_config()
    configure_logging(verbose)
    errors = sync_errors()

    ledger = Ledger(get_state_db())
    try:
        store = create_store(config.storage_options())
        report = Reconciler(ledger, store, config.base_path).reconcile()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except errors as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        ledger.close()

    if not report.changed:
        click.echo("Nothing to reconcile.")
        return

    click.echo(f"Parts confirmed: {report.parts_confirmed}")
    for transfer_id in report.completed:
        click.echo(f"  ✓ completed {transfer_id}")
    for transfer_id in report.abandoned:
        click.echo(f"  ✗ abandoned {transfer_id}")
