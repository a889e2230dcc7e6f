"""Startup reconciliation of interrupted transfers.

A run can stop between a part's put and its status commit, or between
recording parts and uploading them. Reconciler resolves what such runs
left behind before the next batch starts:

- open transfers whose source is gone or changed are abandoned
- pending parts whose object already exists with this transfer's
  metadata are marked uploaded
- split transfers with every part uploaded are marked complete

Abandoned transfers keep their part records for inspection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from s3sync.core.types import TransferStatus, UploadStatus
from s3sync.sync.types import to_key

if TYPE_CHECKING:
    from s3sync.state import Ledger, PartRecord, TransferRecord
    from s3sync.storage import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """What a reconciliation pass changed."""

    abandoned: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    parts_confirmed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.abandoned or self.completed or self.parts_confirmed)


class Reconciler:
    """Checks open transfers against the local disk and the object store."""

    def __init__(self, ledger: Ledger, store: ObjectStore, base_path: Path) -> None:
        self._ledger = ledger
        self._store = store
        self._base_path = Path(base_path)

    def reconcile(self) -> ReconcileReport:
        """Run one reconciliation pass over every open transfer."""
        report = ReconcileReport()

        for transfer in self._ledger.list_transfers(open_only=True):
            if not self._source_matches(transfer):
                logger.warning(
                    f"Source of transfer {transfer.transfer_id} changed or vanished, "
                    "abandoning it"
                )
                self._ledger.set_transfer_status(transfer.transfer_id, TransferStatus.ABANDONED)
                report.abandoned.append(transfer.transfer_id)
                continue

            for part in self._ledger.pending_parts(transfer.transfer_id):
                if self._object_matches(part):
                    self._ledger.mark_part_uploaded(transfer.transfer_id, part.part_path)
                    report.parts_confirmed += 1
                    logger.info(f"Part {part.part_path} found in store, marked uploaded")

            if transfer.status == TransferStatus.SPLIT and self._all_uploaded(transfer):
                self._ledger.set_transfer_status(transfer.transfer_id, TransferStatus.COMPLETE)
                report.completed.append(transfer.transfer_id)
                logger.info(f"Transfer {transfer.transfer_id} of {transfer.source_path} complete")

        return report

    def _source_matches(self, transfer: TransferRecord) -> bool:
        try:
            stat = (self._base_path / transfer.source_path).stat()
        except FileNotFoundError:
            return False
        return stat.st_mtime == transfer.last_modified and stat.st_size == transfer.size

    def _object_matches(self, part: PartRecord) -> bool:
        metadata = self._store.head(to_key(part.part_path))
        if metadata is None:
            return False
        return (
            metadata.get("transfer-id") == part.transfer_id
            and metadata.get("sequence") == str(part.sequence)
        )

    def _all_uploaded(self, transfer: TransferRecord) -> bool:
        parts = self._ledger.list_parts(transfer.transfer_id)
        return bool(parts) and all(
            part.upload_status == UploadStatus.UPLOADED for part in parts
        )
