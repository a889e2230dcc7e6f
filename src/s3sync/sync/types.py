"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, SyncCancelledError, SplitCancelledError: Exception classes
- FileUnit: A whole file or a part scheduled for upload
- UnitProgress: Per-item progress event
- BatchResult: Overall batch result
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class SyncError(Exception):
    """Base exception for sync errors."""


class SyncCancelledError(SyncError):
    """The initiator requested cancellation."""


class SplitCancelledError(SyncCancelledError):
    """A split was cancelled before the splitter finished."""


def to_key(path: str) -> str:
    """Normalize a relative path to a canonical object key."""
    return path.replace("\\", "/").lstrip("/")


@dataclass(frozen=True)
class FileUnit:
    """A file or file part scheduled for upload.

    Attributes:
        path: Path relative to the sync root.
        size: Size in bytes.
        is_part: True for a piece of a split file.
        transfer_id: Owning transfer (parts only).
        sequence: Position of the piece within its transfer (parts only).
        local_path: File holding the bytes when it is not at the sync root
            path (staged parts).
    """

    path: str
    size: int
    is_part: bool = False
    transfer_id: str | None = None
    sequence: int | None = None
    local_path: Path | None = None

    @property
    def key(self) -> str:
        """Object key for this unit."""
        return to_key(self.path)

    def metadata(self) -> dict[str, str]:
        """Object metadata identifying the transfer a part belongs to."""
        if not self.is_part:
            return {}
        return {"transfer-id": str(self.transfer_id), "sequence": str(self.sequence)}


class UnitOutcome(Enum):
    """What happened to one item of a batch."""

    STARTED = "started"
    SPLIT = "split"
    UPLOADED = "uploaded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class UnitProgress:
    """Progress information for one item of a batch."""

    path: str
    outcome: UnitOutcome
    index: int
    total: int
    detail: str = ""


# Type alias for progress callback
ProgressCallback = Callable[[UnitProgress], None]


@dataclass
class BatchResult:
    """Result of a batch upload."""

    uploaded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    parts_uploaded: int = 0

    @property
    def total(self) -> int:
        return len(self.uploaded) + len(self.skipped)
