"""Batch upload of changed files.

This module provides:
- BatchDriver: Uploads a list of changed paths strictly in order and stops
  at the first error
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from s3sync.core.splitting import MAX_OBJECT_SIZE, SizeClass, classify
from s3sync.core.types import TransferStatus, UploadStatus
from s3sync.sync.types import (
    BatchResult,
    FileUnit,
    ProgressCallback,
    SyncCancelledError,
    UnitOutcome,
    UnitProgress,
)

if TYPE_CHECKING:
    from s3sync.state import Ledger
    from s3sync.sync.splitter import SplitCoordinator
    from s3sync.sync.upload import UploadOrchestrator

logger = logging.getLogger(__name__)


class BatchDriver:
    """Drives the upload of a batch of changed files.

    Files are handled one at a time in the order given. Files above
    max_object_size go through the split coordinator and are uploaded part
    by part; the rest are uploaded whole. The first error ends the batch;
    what was committed before it stays committed.
    """

    def __init__(
        self,
        orchestrator: UploadOrchestrator,
        coordinator: SplitCoordinator,
        ledger: Ledger,
        base_path: Path,
        max_object_size: int = MAX_OBJECT_SIZE,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._coordinator = coordinator
        self._ledger = ledger
        self._base_path = Path(base_path)
        self._max_object_size = max_object_size
        self._progress_callback = progress_callback

    def upload_all(
        self,
        units: Sequence[str],
        deep: bool,
        cancel_event: threading.Event | None = None,
    ) -> BatchResult:
        """Upload every path in units.

        Args:
            units: Changed paths relative to the sync root, in upload order.
            deep: Use the archival storage tier.
            cancel_event: Set by the caller to stop before the next file.

        Returns:
            BatchResult listing uploaded and skipped paths.

        Raises:
            SyncCancelledError: If cancel_event was set.
            Exception: The first error of any file, unchanged.
        """
        result = BatchResult()
        total = len(units)
        if total == 0:
            logger.info("No files to upload")
            return result

        for index, path in enumerate(units, start=1):
            if cancel_event is not None and cancel_event.is_set():
                raise SyncCancelledError(f"Batch cancelled before {path}")

            self._report(path, UnitOutcome.STARTED, index, total)
            try:
                uploaded = self._upload_one(path, deep, result, index, total, cancel_event)
            except Exception as e:
                logger.error(f"Upload of {path} failed: {e}")
                self._report(path, UnitOutcome.FAILED, index, total, str(e))
                raise

            if uploaded:
                result.uploaded.append(path)
                self._report(path, UnitOutcome.UPLOADED, index, total)
            else:
                result.skipped.append(path)
                self._report(path, UnitOutcome.SKIPPED, index, total)

        logger.info(
            f"Batch done: {len(result.uploaded)} uploaded, {len(result.skipped)} skipped"
        )
        return result

    def _upload_one(
        self,
        path: str,
        deep: bool,
        result: BatchResult,
        index: int,
        total: int,
        cancel_event: threading.Event | None,
    ) -> bool:
        """Upload one file. Returns False if it was already uploaded."""
        stat = (self._base_path / path).stat()
        unit = FileUnit(path=path, size=stat.st_size)

        if classify(unit.size, self._max_object_size) == SizeClass.WHOLE:
            record = self._ledger.upsert_file_status(
                path, stat.st_mtime, UploadStatus.PENDING, size=unit.size
            )
            if record.upload_status == UploadStatus.UPLOADED:
                logger.debug(f"{path} already uploaded")
                return False
            self._orchestrator.upload_unit(unit, deep)
            return True

        if self._ledger.is_current(path, stat.st_mtime):
            logger.debug(f"{path} already uploaded in parts")
            return False

        logger.warning(f"{path} is too big for a single object, splitting into parts")
        with self._coordinator.split(unit, stat.st_mtime, cancel_event) as split:
            self._report(path, UnitOutcome.SPLIT, index, total, f"{len(split.parts)} parts")
            result.parts_uploaded += self._orchestrator.upload_parts(split.units(), deep)
            self._ledger.set_transfer_status(split.transfer_id, TransferStatus.COMPLETE)
        return True

    def _report(
        self,
        path: str,
        outcome: UnitOutcome,
        index: int,
        total: int,
        detail: str = "",
    ) -> None:
        if self._progress_callback:
            self._progress_callback(UnitProgress(path, outcome, index, total, detail))
