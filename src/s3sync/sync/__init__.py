"""Sync operations for uploading a folder to an object store.

Architecture:
    take_inventory → compute_diff → BatchDriver → UploadOrchestrator
                                        ↓
                                  SplitCoordinator (files over the size limit)

Components:
- **Scanner**: Walks the sync folder and diffs it against the ledger
- **BatchDriver**: Sequential, fail-fast upload of changed paths
- **SplitCoordinator**: Runs the splitter thread and owns piece files
- **UploadOrchestrator**: Put then status commit, part by part
- **Reconciler**: Resolves transfers left open by an interrupted run
"""

from s3sync.sync.batch import BatchDriver
from s3sync.sync.reconcile import Reconciler, ReconcileReport
from s3sync.sync.scanner import (
    DEFAULT_IGNORE_PATTERNS,
    compute_diff,
    matches_filters,
    take_inventory,
)
from s3sync.sync.splitter import (
    PieceReady,
    SplitCoordinator,
    SplitDone,
    SplitResult,
    SplitterTask,
)
from s3sync.sync.types import (
    BatchResult,
    FileUnit,
    ProgressCallback,
    SplitCancelledError,
    SyncCancelledError,
    SyncError,
    UnitOutcome,
    UnitProgress,
    to_key,
)
from s3sync.sync.upload import UploadOrchestrator

__all__ = [
    "DEFAULT_IGNORE_PATTERNS",
    "BatchDriver",
    "BatchResult",
    "FileUnit",
    "PieceReady",
    "ProgressCallback",
    "ReconcileReport",
    "Reconciler",
    "SplitCancelledError",
    "SplitCoordinator",
    "SplitDone",
    "SplitResult",
    "SplitterTask",
    "SyncCancelledError",
    "SyncError",
    "UnitOutcome",
    "UnitProgress",
    "UploadOrchestrator",
    "compute_diff",
    "matches_filters",
    "take_inventory",
    "to_key",
]
