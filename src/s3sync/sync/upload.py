"""Upload of whole files and parts with per-unit status commits.

This module provides:
- UploadOrchestrator: Puts one unit in the object store, then commits its
  status in the ledger; uploads the parts of a split file in sequence order
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from s3sync.core.types import StorageClass, UploadStatus
from s3sync.sync.types import FileUnit

if TYPE_CHECKING:
    from s3sync.state import Ledger
    from s3sync.storage import ObjectStore

logger = logging.getLogger(__name__)


class UploadOrchestrator:
    """Uploads units one at a time.

    A unit's status is committed only after its put returned. Nothing is
    retried: the first error (open, put or commit) is raised unchanged.
    """

    def __init__(
        self,
        store: ObjectStore,
        ledger: Ledger,
        base_path: Path,
        on_part_uploaded: Callable[[FileUnit], None] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Target object store.
            ledger: Ledger receiving status commits.
            base_path: Sync root; unit paths are relative to it.
            on_part_uploaded: Optional callback after each committed part.
        """
        self._store = store
        self._ledger = ledger
        self._base_path = Path(base_path)
        self._on_part_uploaded = on_part_uploaded

    def upload_unit(self, unit: FileUnit, deep: bool) -> None:
        """Upload one whole file or part and commit its status.

        Args:
            unit: Unit to upload.
            deep: Use the archival storage tier.

        Raises:
            OSError: If the local file cannot be opened or read.
            Exception: Store or ledger errors, unchanged.
        """
        local_path = unit.local_path or self._base_path / unit.path
        storage_class = StorageClass.for_deep(deep)

        with open(local_path, "rb") as body:
            logger.info(f"Uploading {unit.key} ({unit.size} bytes, {storage_class.value})")
            self._store.put(unit.key, body, storage_class, unit.metadata())

        if unit.is_part:
            self._ledger.mark_part_uploaded(str(unit.transfer_id), unit.path)
        else:
            self._ledger.mark_file_uploaded(unit.path)
        logger.debug(f"Committed {unit.path}")

    def upload_parts(self, parts: Iterable[FileUnit], deep: bool) -> int:
        """Upload the parts of one transfer in sequence order.

        Parts already marked uploaded in the ledger are skipped, so an
        interrupted transfer resumes with its first pending part.

        Args:
            parts: Part units of a single transfer.
            deep: Use the archival storage tier.

        Returns:
            Number of parts uploaded by this call.
        """
        ordered = sorted(parts, key=lambda unit: unit.sequence or 0)
        if not ordered:
            return 0

        transfer_id = str(ordered[0].transfer_id)
        if any(str(unit.transfer_id) != transfer_id for unit in ordered):
            raise ValueError("upload_parts() takes the parts of a single transfer")

        done = {
            part.sequence
            for part in self._ledger.list_parts(transfer_id)
            if part.upload_status == UploadStatus.UPLOADED
        }

        uploaded = 0
        for unit in ordered:
            if unit.sequence in done:
                logger.debug(f"Skipping already uploaded part {unit.path}")
                continue
            self.upload_unit(unit, deep)
            uploaded += 1
            if self._on_part_uploaded:
                self._on_part_uploaded(unit)

        logger.info(f"Uploaded {uploaded}/{len(ordered)} parts of transfer {transfer_id}")
        return uploaded
