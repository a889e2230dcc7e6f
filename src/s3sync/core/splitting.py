"""Size classification and fixed-size file splitting.

This module provides:
- classify(): decides whether a file fits in a single object
- iter_pieces(): splits a file into bounded-size piece files
- cleanup_staging(): removes a staging directory and the pieces in it

Pieces are written to a staging directory as ``<name>.partNNN`` in file
offset order, never beside their source. Splitting is deterministic: the
same file at the same piece size always yields the same piece names and
sizes, which lets an interrupted transfer resume.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

# Largest object accepted by a single PUT on the target store (4 GiB)
MAX_OBJECT_SIZE = 4 * 1024 * 1024 * 1024

# Read/write buffer used while copying a piece
COPY_BUFFER_SIZE = 8 * 1024 * 1024  # 8 MB

# Directory under the sync root holding pieces while they are uploaded
STAGING_DIR_NAME = ".s3sync"


class SizeClass(Enum):
    """How a file must be uploaded."""

    WHOLE = "whole"
    SPLIT = "split"


def classify(size: int, max_object_size: int = MAX_OBJECT_SIZE) -> SizeClass:
    """Classify a file by size.

    Args:
        size: File size in bytes.
        max_object_size: Largest size uploadable as one object.

    Returns:
        SizeClass.SPLIT if size exceeds max_object_size, else SizeClass.WHOLE.

    Raises:
        ValueError: If size is negative.
    """
    if size < 0:
        raise ValueError(f"Invalid size: {size}")
    if size > max_object_size:
        return SizeClass.SPLIT
    return SizeClass.WHOLE


def piece_name(name: str, sequence: int) -> str:
    """Return the name of the piece with the given sequence number."""
    return f"{name}.part{sequence:03d}"


def iter_pieces(
    source: Path,
    max_piece_size: int,
    target_dir: Path,
    buffer_size: int = COPY_BUFFER_SIZE,
) -> Iterator[Path]:
    """Split a file into pieces of at most max_piece_size bytes.

    Each piece is fully written and closed before its path is yielded.

    Args:
        source: File to split.
        max_piece_size: Maximum size of one piece in bytes.
        target_dir: Existing directory receiving the pieces.
        buffer_size: Copy buffer size.

    Yields:
        Piece paths in file offset order.

    Raises:
        ValueError: If max_piece_size is not positive.
        OSError: If the source cannot be read or a piece cannot be written.
    """
    if max_piece_size <= 0:
        raise ValueError(f"Invalid piece size: {max_piece_size}")

    source = Path(source)
    target_dir = Path(target_dir)
    with open(source, "rb") as src:
        sequence = 0
        while True:
            data = src.read(min(buffer_size, max_piece_size))
            if not data:
                return

            target = target_dir / piece_name(source.name, sequence)
            written = 0
            try:
                with open(target, "wb") as dst:
                    while data:
                        dst.write(data)
                        written += len(data)
                        remaining = max_piece_size - written
                        if remaining <= 0:
                            break
                        data = src.read(min(buffer_size, remaining))
            except OSError:
                # Never leave a half-written piece behind
                target.unlink(missing_ok=True)
                raise

            logger.debug(f"Wrote piece {target.name} ({written} bytes)")
            yield target
            sequence += 1


def cleanup_staging(directory: Path) -> None:
    """Delete a staging directory and every piece in it.

    A directory that is already gone is ignored.
    """
    try:
        shutil.rmtree(directory)
    except FileNotFoundError:
        return
    logger.debug(f"Removed staging directory {directory}")
