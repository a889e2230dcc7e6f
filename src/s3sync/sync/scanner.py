"""Local inventory and change detection.

This module provides:
- take_inventory(): Walks the sync folder and records each file's mtime
- compute_diff(): Lists inventoried files the ledger does not have uploaded
- matches_filters(): Suffix filter used while walking
"""

from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from s3sync.core.splitting import STAGING_DIR_NAME

if TYPE_CHECKING:
    from s3sync.state import Ledger

logger = logging.getLogger(__name__)

# Names never synced, whatever the filters say
DEFAULT_IGNORE_PATTERNS = [
    ".git",
    ".DS_Store",
    "Thumbs.db",
    "*.tmp",
    "*.temp",
    "~*",
    "*.swp",
    "*.swo",
    STAGING_DIR_NAME,
]


def matches_filters(name: str, filters: Iterable[str]) -> bool:
    """Check if a file name ends with one of the filter suffixes.

    An empty filter list matches every name.
    """
    filters = list(filters)
    if not filters:
        return True
    return any(name.endswith(suffix) for suffix in filters)


def is_ignored(name: str, patterns: Iterable[str] = DEFAULT_IGNORE_PATTERNS) -> bool:
    """Check a single path component against ignore patterns."""
    return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)


def take_inventory(root: Path, filters: Iterable[str] = ()) -> dict[str, float]:
    """Walk a directory tree and return its files with their mtimes.

    Symlinks and ignored names are skipped. The staging directory is
    pruned, so pieces of a split in progress are never inventoried.

    Args:
        root: Sync folder.
        filters: File name suffixes to keep (empty keeps everything).

    Returns:
        Mapping of path relative to root (forward slashes) to mtime.

    Raises:
        FileNotFoundError: If root does not exist.
    """
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Sync folder not found: {root}")

    filters = list(filters)
    inventory: dict[str, float] = {}

    for root_str, dirs, files in os.walk(root):
        current = Path(root_str)

        # Prune ignored directories and directory symlinks
        dirs[:] = [
            d for d in dirs
            if not is_ignored(d) and not (current / d).is_symlink()
        ]

        for filename in files:
            file_path = current / filename
            if (
                file_path.is_symlink()
                or is_ignored(filename)
                or not matches_filters(filename, filters)
            ):
                continue

            relative_path = file_path.relative_to(root).as_posix()
            inventory[relative_path] = file_path.stat().st_mtime

    logger.info(f"Inventory of {root}: {len(inventory)} files")
    return inventory


def compute_diff(inventory: dict[str, float], ledger: Ledger) -> list[str]:
    """List the files whose current version is not uploaded yet.

    Args:
        inventory: Output of take_inventory().
        ledger: Ledger holding upload status.

    Returns:
        Relative paths, sorted.
    """
    changed = [
        path for path, mtime in sorted(inventory.items())
        if not ledger.is_current(path, mtime)
    ]
    logger.info(f"{len(changed)} of {len(inventory)} files need uploading")
    return changed
