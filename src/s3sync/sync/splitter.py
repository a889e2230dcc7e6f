"""Split coordination for files too large for a single object.

This module provides:
- PieceReady, SplitDone: Messages posted by the splitter thread
- SplitterTask: Runs the splitter on a background thread
- SplitResult: Transfer, part records and piece files produced by a split
- SplitCoordinator: Starts the splitter, drains its channel, records parts
  and removes piece files when the split-and-upload cycle ends

Protocol:
    The splitter posts one PieceReady per finished piece, then exactly one
    SplitDone carrying None or the error that stopped it. Both kinds travel
    on the same queue, so every piece posted before SplitDone is seen by
    the coordinator before the loop ends.

Pieces are written to a private staging directory, never into the user's
folders. Part paths in the ledger (and object keys) are still named after
the source, ``<source path>.partNNN``.
"""

from __future__ import annotations

import logging
import queue
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Union

from s3sync.core.splitting import (
    MAX_OBJECT_SIZE,
    STAGING_DIR_NAME,
    cleanup_staging,
    iter_pieces,
    piece_name,
)
from s3sync.core.types import TransferStatus
from s3sync.sync.types import FileUnit, SplitCancelledError

if TYPE_CHECKING:
    from s3sync.state import Ledger, PartRecord, TransferRecord

logger = logging.getLogger(__name__)

# Splitter signature: (source, max_piece_size, target_dir) -> piece paths in offset order
Splitter = Callable[[Path, int, Path], Iterator[Path]]


@dataclass(frozen=True)
class PieceReady:
    """A piece file has been fully written."""

    path: Path


@dataclass(frozen=True)
class SplitDone:
    """The splitter finished; error is None on success."""

    error: Exception | None = None


SplitMessage = Union[PieceReady, SplitDone]


class SplitterTask:
    """Runs a splitter on its own thread.

    The task touches neither the ledger nor the network. It only writes
    piece files and posts messages to its channel. It stops after the
    current piece when either the caller's cancel event or its own stop
    event is set, ending with SplitDone(SplitCancelledError). stop() never
    touches the caller's event.
    """

    def __init__(
        self,
        source: Path,
        max_piece_size: int,
        target_dir: Path,
        channel: queue.Queue[SplitMessage],
        cancel_event: threading.Event | None = None,
        splitter: Splitter = iter_pieces,
    ) -> None:
        self._source = source
        self._max_piece_size = max_piece_size
        self._target_dir = target_dir
        self._channel = channel
        self._cancel_event = cancel_event
        self._stop_event = threading.Event()
        self._splitter = splitter
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start splitting in the background."""
        self._thread = threading.Thread(
            target=self._run,
            name=f"Splitter-{self._source.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Ask the splitter to stop after its current piece."""
        self._stop_event.set()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _check_cancelled(self, count: int) -> None:
        cancelled = self._cancel_event is not None and self._cancel_event.is_set()
        if cancelled or self._stop_event.is_set():
            raise SplitCancelledError(
                f"Split of {self._source} cancelled after {count} pieces"
            )

    def _run(self) -> None:
        count = 0
        try:
            self._check_cancelled(count)
            for piece in self._splitter(self._source, self._max_piece_size, self._target_dir):
                self._channel.put(PieceReady(Path(piece)))
                count += 1
                self._check_cancelled(count)
        except Exception as e:
            logger.debug(f"Splitter for {self._source} stopped: {e}")
            self._channel.put(SplitDone(e))
            return
        self._channel.put(SplitDone())


@dataclass
class SplitResult:
    """Records and piece files produced by one split.

    pieces[n] is the staged file of the part with sequence n.
    """

    transfer: TransferRecord
    parts: list[PartRecord]
    pieces: list[Path]

    @property
    def transfer_id(self) -> str:
        return self.transfer.transfer_id

    def units(self) -> list[FileUnit]:
        """Parts as upload units, in sequence order."""
        return [
            FileUnit(
                path=part.part_path,
                size=part.size,
                is_part=True,
                transfer_id=part.transfer_id,
                sequence=part.sequence,
                local_path=self.pieces[part.sequence],
            )
            for part in sorted(self.parts, key=lambda p: p.sequence)
        ]


class SplitCoordinator:
    """Coordinates the splitter thread for one oversized file at a time.

    Usage:
        with coordinator.split(unit, last_modified) as result:
            orchestrator.upload_parts(result.units(), deep)
        # piece files are gone here, whatever happened in the block
    """

    def __init__(
        self,
        ledger: Ledger,
        base_path: Path,
        max_piece_size: int = MAX_OBJECT_SIZE,
        splitter: Splitter = iter_pieces,
        on_piece: Callable[[str, int], None] | None = None,
        staging_dir: Path | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            ledger: Ledger receiving transfer and part records.
            base_path: Sync root; unit paths are relative to it.
            max_piece_size: Maximum size of one piece.
            splitter: Function producing piece files.
            on_piece: Optional callback (part path, pieces so far).
            staging_dir: Directory holding piece files while they are
                uploaded (default: ``<base_path>/.s3sync``).
        """
        self._ledger = ledger
        self._base_path = Path(base_path)
        self._max_piece_size = max_piece_size
        self._splitter = splitter
        self._on_piece = on_piece
        self._staging_dir = (
            Path(staging_dir) if staging_dir else self._base_path / STAGING_DIR_NAME
        )

    @contextmanager
    def split(
        self,
        unit: FileUnit,
        last_modified: float,
        cancel_event: threading.Event | None = None,
    ) -> Iterator[SplitResult]:
        """Split a file and keep its pieces for the duration of the block.

        Args:
            unit: The oversized source file.
            last_modified: Source mtime, stored as the transfer fingerprint.
            cancel_event: Set by the caller to stop the splitter early.

        Yields:
            SplitResult with the transfer, its part records and piece files.

        Raises:
            SplitCancelledError: If cancel_event was set during the split.
            Exception: Whatever error stopped the splitter, unchanged.
        """
        source = self._base_path / unit.path
        transfer = self._begin_transfer(unit, last_modified)

        self._staging_dir.mkdir(parents=True, exist_ok=True)
        work_dir = Path(
            tempfile.mkdtemp(prefix=f"{transfer.transfer_id}-", dir=self._staging_dir)
        )

        channel: queue.Queue[SplitMessage] = queue.Queue()
        task = SplitterTask(
            source,
            self._max_piece_size,
            work_dir,
            channel,
            cancel_event=cancel_event,
            splitter=self._splitter,
        )
        pieces: list[Path] = []

        with ExitStack() as stack:
            # Runs last: remove the staging directory and every piece in it
            stack.callback(cleanup_staging, work_dir)
            # Runs first: make sure the splitter is done writing
            stack.callback(self._stop, task)

            logger.info(f"Splitting {unit.path} (transfer {transfer.transfer_id})")
            task.start()
            error = self._drain(unit, channel, pieces)

            if error is not None:
                self._record_failure(unit, transfer, pieces, error)
                raise error

            parts = self._record(unit, transfer, pieces)
            self._ledger.set_transfer_status(transfer.transfer_id, TransferStatus.SPLIT)
            logger.info(f"Split {unit.path} into {len(parts)} parts")

            yield SplitResult(transfer=transfer, parts=parts, pieces=list(pieces))

    def _begin_transfer(self, unit: FileUnit, last_modified: float) -> TransferRecord:
        """Resume the open transfer for this fingerprint and piece size, or create one."""
        self._ledger.abandon_stale_transfers(
            unit.path, last_modified, unit.size, self._max_piece_size
        )

        existing = self._ledger.find_open_transfer(
            unit.path, last_modified, unit.size, self._max_piece_size
        )
        if existing is not None:
            logger.info(f"Resuming transfer {existing.transfer_id} for {unit.path}")
            self._ledger.set_transfer_status(existing.transfer_id, TransferStatus.SPLITTING)
            existing.status = TransferStatus.SPLITTING
            return existing

        return self._ledger.create_transfer(
            unit.path, last_modified, unit.size, self._max_piece_size
        )

    def _drain(
        self,
        unit: FileUnit,
        channel: queue.Queue[SplitMessage],
        pieces: list[Path],
    ) -> Exception | None:
        """Collect pieces until the terminal message arrives."""
        while True:
            message = channel.get()
            if isinstance(message, SplitDone):
                return message.error

            pieces.append(message.path)
            logger.debug(f"Piece {message.path.name} ready ({len(pieces)} so far)")
            if self._on_piece:
                self._on_piece(piece_name(unit.path, len(pieces) - 1), len(pieces))

    def _stop(self, task: SplitterTask) -> None:
        """Stop the splitter and wait until it no longer writes pieces."""
        if task.is_alive():
            task.stop()
        task.join()

    def _record(
        self,
        unit: FileUnit,
        transfer: TransferRecord,
        pieces: list[Path],
        complete: bool = True,
    ) -> list[PartRecord]:
        return self._ledger.record_parts(
            transfer.transfer_id,
            [piece_name(unit.path, sequence) for sequence in range(len(pieces))],
            sizes=[piece.stat().st_size for piece in pieces],
            complete=complete,
        )

    def _record_failure(
        self,
        unit: FileUnit,
        transfer: TransferRecord,
        pieces: list[Path],
        error: Exception,
    ) -> None:
        """Keep produced pieces as pending records and mark the transfer failed."""
        logger.error(f"Split of {transfer.source_path} failed: {error}")
        try:
            if pieces:
                self._record(unit, transfer, pieces, complete=False)
            self._ledger.set_transfer_status(transfer.transfer_id, TransferStatus.FAILED)
        except Exception as ledger_error:
            # The splitter error is the one reported to the caller
            logger.error(
                f"Could not record failed transfer {transfer.transfer_id}: {ledger_error}"
            )
