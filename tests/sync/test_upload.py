"""Tests for the upload orchestrator."""

from __future__ import annotations

import random
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from s3sync.core.types import StorageClass, UploadStatus
from s3sync.state import Ledger, LedgerError
from s3sync.storage import ObjectStore
from s3sync.sync.types import FileUnit
from s3sync.sync.upload import UploadOrchestrator


@pytest.fixture
def mock_store() -> MagicMock:
    """Create a mock ObjectStore."""
    return MagicMock(spec=ObjectStore)


@pytest.fixture
def orchestrator(mock_store: MagicMock, ledger: Ledger, sync_root: Path) -> UploadOrchestrator:
    return UploadOrchestrator(mock_store, ledger, sync_root)


def make_parts(
    ledger: Ledger,
    make_file: Callable[..., Path],
    count: int = 3,
) -> tuple[str, list[FileUnit]]:
    """Record a transfer with count parts written under the sync folder."""
    transfer = ledger.create_transfer("big.bin", 1.0, count * 4)
    paths = [f"big.bin.part{i:03d}" for i in range(count)]
    for path in paths:
        make_file(path, b"piece")
    ledger.record_parts(transfer.transfer_id, paths, sizes=[5] * count)
    units = [
        FileUnit(path=path, size=5, is_part=True, transfer_id=transfer.transfer_id, sequence=i)
        for i, path in enumerate(paths)
    ]
    return transfer.transfer_id, units


class TestFileUnit:
    """Tests for FileUnit keys and metadata."""

    def test_key_uses_forward_slashes(self) -> None:
        assert FileUnit(path="photos\\2024\\cat.jpg", size=1).key == "photos/2024/cat.jpg"

    def test_key_strips_leading_slash(self) -> None:
        assert FileUnit(path="/a/b.txt", size=1).key == "a/b.txt"

    def test_whole_file_has_no_metadata(self) -> None:
        assert FileUnit(path="a.txt", size=1).metadata() == {}

    def test_part_metadata(self) -> None:
        unit = FileUnit(path="a.part001", size=1, is_part=True, transfer_id="t1", sequence=1)
        assert unit.metadata() == {"transfer-id": "t1", "sequence": "1"}


class TestUploadUnit:
    """Tests for upload_unit()."""

    def test_uploads_whole_file(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        make_file("docs/readme.txt", b"hello")
        ledger.upsert_file_status("docs/readme.txt", 1.0)

        orchestrator.upload_unit(FileUnit(path="docs/readme.txt", size=5), deep=False)

        mock_store.put.assert_called_once()
        key, body, storage_class, metadata = mock_store.put.call_args.args
        assert key == "docs/readme.txt"
        assert storage_class == StorageClass.STANDARD
        assert metadata == {}
        assert ledger.get_file("docs/readme.txt").upload_status == UploadStatus.UPLOADED

    def test_deep_uses_archive_tier(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        make_file("a.txt")
        ledger.upsert_file_status("a.txt", 1.0)

        orchestrator.upload_unit(FileUnit(path="a.txt", size=4), deep=True)

        assert mock_store.put.call_args.args[2] == StorageClass.DEEP_ARCHIVE

    def test_body_is_file_content(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        make_file("a.txt", b"content")
        ledger.upsert_file_status("a.txt", 1.0)
        bodies: list[bytes] = []
        mock_store.put.side_effect = lambda key, body, *args: bodies.append(body.read())

        orchestrator.upload_unit(FileUnit(path="a.txt", size=7), deep=False)

        assert bodies == [b"content"]

    def test_does_not_delete_local_file(
        self,
        orchestrator: UploadOrchestrator,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        path = make_file("a.txt")
        ledger.upsert_file_status("a.txt", 1.0)

        orchestrator.upload_unit(FileUnit(path="a.txt", size=4), deep=False)

        assert path.exists()

    def test_missing_file_raises(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
    ) -> None:
        """A file that vanished is an error, not a silent skip."""
        ledger.upsert_file_status("gone.txt", 1.0)

        with pytest.raises(FileNotFoundError):
            orchestrator.upload_unit(FileUnit(path="gone.txt", size=4), deep=False)

        mock_store.put.assert_not_called()
        assert ledger.get_file("gone.txt").upload_status == UploadStatus.PENDING

    def test_put_error_propagates_unchanged(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        make_file("a.txt")
        ledger.upsert_file_status("a.txt", 1.0)
        error = ConnectionError("network down")
        mock_store.put.side_effect = error

        with pytest.raises(ConnectionError) as excinfo:
            orchestrator.upload_unit(FileUnit(path="a.txt", size=4), deep=False)

        assert excinfo.value is error
        assert mock_store.put.call_count == 1  # no retry
        assert ledger.get_file("a.txt").upload_status == UploadStatus.PENDING

    def test_status_committed_after_put(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        make_file("a.txt")
        ledger.upsert_file_status("a.txt", 1.0)
        during_put: list[UploadStatus] = []
        mock_store.put.side_effect = lambda *args: during_put.append(
            ledger.get_file("a.txt").upload_status
        )

        orchestrator.upload_unit(FileUnit(path="a.txt", size=4), deep=False)

        assert during_put == [UploadStatus.PENDING]
        assert ledger.get_file("a.txt").upload_status == UploadStatus.UPLOADED

    def test_unrecorded_file_raises_ledger_error(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        make_file: Callable[..., Path],
    ) -> None:
        make_file("a.txt")

        with pytest.raises(LedgerError):
            orchestrator.upload_unit(FileUnit(path="a.txt", size=4), deep=False)

    def test_uploads_part_with_metadata(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        transfer_id, units = make_parts(ledger, make_file, count=1)

        orchestrator.upload_unit(units[0], deep=False)

        key, _, _, metadata = mock_store.put.call_args.args
        assert key == "big.bin.part000"
        assert metadata == {"transfer-id": transfer_id, "sequence": "0"}
        assert ledger.pending_parts(transfer_id) == []

    def test_reads_staged_part_from_local_path(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        tmp_path: Path,
        make_file: Callable[..., Path],
    ) -> None:
        """A staged part is read from its staging file, not from the sync folder."""
        make_file("big.bin.part000", b"USER DATA")
        staged = tmp_path / "stage" / "big.bin.part000"
        staged.parent.mkdir()
        staged.write_bytes(b"0123")
        transfer = ledger.create_transfer("big.bin", 1.0, 8)
        ledger.record_parts(transfer.transfer_id, ["big.bin.part000"], sizes=[4])
        bodies: list[bytes] = []
        mock_store.put.side_effect = lambda key, body, *args: bodies.append(body.read())
        unit = FileUnit(
            path="big.bin.part000",
            size=4,
            is_part=True,
            transfer_id=transfer.transfer_id,
            sequence=0,
            local_path=staged,
        )

        orchestrator.upload_unit(unit, deep=False)

        assert bodies == [b"0123"]
        assert mock_store.put.call_args.args[0] == "big.bin.part000"


class TestUploadParts:
    """Tests for upload_parts()."""

    def test_uploads_in_sequence_order(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        transfer_id, units = make_parts(ledger, make_file, count=5)
        shuffled = list(units)
        random.Random(7).shuffle(shuffled)

        uploaded = orchestrator.upload_parts(shuffled, deep=False)

        assert uploaded == 5
        keys = [c.args[0] for c in mock_store.put.call_args_list]
        assert keys == [f"big.bin.part{i:03d}" for i in range(5)]

    def test_each_part_committed_right_after_its_put(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        """When part N is put, parts before it are uploaded and N is still pending."""
        transfer_id, units = make_parts(ledger, make_file, count=3)
        snapshots: list[list[UploadStatus]] = []

        def record(*args: Any) -> None:
            snapshots.append([p.upload_status for p in ledger.list_parts(transfer_id)])

        mock_store.put.side_effect = record

        orchestrator.upload_parts(units, deep=False)

        P, U = UploadStatus.PENDING, UploadStatus.UPLOADED
        assert snapshots == [[P, P, P], [U, P, P], [U, U, P]]
        assert ledger.pending_parts(transfer_id) == []

    def test_failure_leaves_accurate_partial_record(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        transfer_id, units = make_parts(ledger, make_file, count=3)
        mock_store.put.side_effect = [None, TimeoutError("timed out")]

        with pytest.raises(TimeoutError):
            orchestrator.upload_parts(units, deep=False)

        assert [p.sequence for p in ledger.pending_parts(transfer_id)] == [1, 2]
        assert mock_store.put.call_count == 2

    def test_skips_uploaded_parts(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
        ledger: Ledger,
        make_file: Callable[..., Path],
    ) -> None:
        transfer_id, units = make_parts(ledger, make_file, count=3)
        ledger.mark_part_uploaded(transfer_id, "big.bin.part000")

        uploaded = orchestrator.upload_parts(units, deep=False)

        assert uploaded == 2
        keys = [c.args[0] for c in mock_store.put.call_args_list]
        assert keys == ["big.bin.part001", "big.bin.part002"]

    def test_on_part_uploaded_callback(
        self,
        mock_store: MagicMock,
        ledger: Ledger,
        sync_root: Path,
        make_file: Callable[..., Path],
    ) -> None:
        seen: list[int | None] = []
        orchestrator = UploadOrchestrator(
            mock_store, ledger, sync_root, on_part_uploaded=lambda u: seen.append(u.sequence)
        )
        _, units = make_parts(ledger, make_file, count=2)

        orchestrator.upload_parts(units, deep=False)

        assert seen == [0, 1]

    def test_empty_parts(self, orchestrator: UploadOrchestrator, mock_store: MagicMock) -> None:
        assert orchestrator.upload_parts([], deep=False) == 0
        mock_store.put.assert_not_called()

    def test_rejects_mixed_transfers(
        self,
        orchestrator: UploadOrchestrator,
        mock_store: MagicMock,
    ) -> None:
        units = [
            FileUnit(path="a.part000", size=1, is_part=True, transfer_id="t1", sequence=0),
            FileUnit(path="b.part000", size=1, is_part=True, transfer_id="t2", sequence=0),
        ]

        with pytest.raises(ValueError, match="single transfer"):
            orchestrator.upload_parts(units, deep=False)
        mock_store.put.assert_not_called()
