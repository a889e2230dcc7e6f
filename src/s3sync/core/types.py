"""Shared types for s3sync.

This module defines enums used by the ledger, the object store and the
sync orchestration.
"""

from __future__ import annotations

from enum import Enum


class UploadStatus(str, Enum):
    """Upload status of a whole file or of a part."""

    PENDING = "pending"
    UPLOADED = "uploaded"


class TransferStatus(str, Enum):
    """Lifecycle of one oversized file's split-and-upload cycle.

    SPLITTING, SPLIT and FAILED transfers are "open": a later run for the
    same source fingerprint resumes them.
    """

    SPLITTING = "splitting"
    SPLIT = "split"
    COMPLETE = "complete"
    FAILED = "failed"
    ABANDONED = "abandoned"

    @property
    def is_open(self) -> bool:
        return self in (TransferStatus.SPLITTING, TransferStatus.SPLIT, TransferStatus.FAILED)


class StorageClass(str, Enum):
    """Object store storage tier."""

    STANDARD = "STANDARD"
    DEEP_ARCHIVE = "DEEP_ARCHIVE"

    @classmethod
    def for_deep(cls, deep: bool) -> StorageClass:
        """Return the archival tier when deep is set, the standard tier otherwise."""
        return cls.DEEP_ARCHIVE if deep else cls.STANDARD
