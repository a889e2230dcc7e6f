"""Persistent upload ledger.

This module provides:
- Ledger: SQLite-based record of file, transfer and part upload status
- FileStatusRecord, TransferRecord, PartRecord: Ledger rows

Architecture:
    Whole files get one row in ``files`` keyed by relative path, with their
    mtime as the change fingerprint. Files too large for a single object get
    one row in ``transfers`` per split attempt, and one row in ``parts`` per
    piece. Status only moves forward (pending -> uploaded) for a given
    fingerprint, so a re-run skips everything already confirmed.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from s3sync.core.splitting import MAX_OBJECT_SIZE
from s3sync.core.types import TransferStatus, UploadStatus

logger = logging.getLogger(__name__)

_OPEN_STATUSES = tuple(s.value for s in TransferStatus if s.is_open)


class LedgerError(Exception):
    """The ledger was asked to update a record it does not have."""


@dataclass
class FileStatusRecord:
    """Upload status of a whole (non-split) file.

    Attributes:
        path: Relative path from sync root.
        last_modified: File mtime when recorded (change fingerprint).
        size: File size when recorded.
        upload_status: Pending or uploaded.
        uploaded_at: Timestamp of the confirmed upload, if any.
    """

    path: str
    last_modified: float
    size: int
    upload_status: UploadStatus
    uploaded_at: float | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> FileStatusRecord:
        """Create FileStatusRecord from database row."""
        return cls(
            path=row["path"],
            last_modified=row["last_modified"],
            size=row["size"],
            upload_status=UploadStatus(row["upload_status"]),
            uploaded_at=row["uploaded_at"],
        )


@dataclass
class TransferRecord:
    """One split-and-upload attempt of an oversized file.

    A transfer is tied to its source fingerprint (last_modified, size) and
    to the piece size it was split with; its parts only describe the
    source for that combination.
    """

    transfer_id: str
    source_path: str
    last_modified: float
    size: int
    piece_size: int
    status: TransferStatus
    created_at: float

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> TransferRecord:
        """Create TransferRecord from database row."""
        return cls(
            transfer_id=row["transfer_id"],
            source_path=row["source_path"],
            last_modified=row["last_modified"],
            size=row["size"],
            piece_size=row["piece_size"],
            status=TransferStatus(row["status"]),
            created_at=row["created_at"],
        )


@dataclass
class PartRecord:
    """One piece of a split file."""

    transfer_id: str
    part_path: str
    sequence: int
    size: int
    upload_status: UploadStatus
    uploaded_at: float | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> PartRecord:
        """Create PartRecord from database row."""
        return cls(
            transfer_id=row["transfer_id"],
            part_path=row["part_path"],
            sequence=row["sequence"],
            size=row["size"],
            upload_status=UploadStatus(row["upload_status"]),
            uploaded_at=row["uploaded_at"],
        )


class Ledger:
    """SQLite-based ledger of upload status.

    Safe to share between threads; every access holds an RLock and every
    multi-row write runs in one transaction.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the ledger database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode, explicit BEGIN for batches
        )
        self._conn.row_factory = sqlite3.Row

        # WAL keeps committed rows durable across a crash
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS files (
                path TEXT PRIMARY KEY,
                last_modified REAL NOT NULL,
                size INTEGER NOT NULL DEFAULT 0,
                upload_status TEXT NOT NULL,
                uploaded_at REAL
            );

            CREATE TABLE IF NOT EXISTS transfers (
                transfer_id TEXT PRIMARY KEY,
                source_path TEXT NOT NULL,
                last_modified REAL NOT NULL,
                size INTEGER NOT NULL,
                piece_size INTEGER NOT NULL,
                status TEXT NOT NULL,
                created_at REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_transfers_source
                ON transfers (source_path);

            CREATE TABLE IF NOT EXISTS parts (
                transfer_id TEXT NOT NULL REFERENCES transfers (transfer_id),
                sequence INTEGER NOT NULL,
                part_path TEXT NOT NULL,
                size INTEGER NOT NULL DEFAULT 0,
                upload_status TEXT NOT NULL,
                uploaded_at REAL,
                PRIMARY KEY (transfer_id, sequence)
            );

            -- Key-value sync state
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block of statements as one transaction."""
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    # === Whole files ===

    def get_file(self, path: str) -> FileStatusRecord | None:
        """Get a file record by path.

        Args:
            path: Relative path of the file.

        Returns:
            FileStatusRecord if found, None otherwise.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM files WHERE path = ?",
                (path,),
            ).fetchone()
        if row is None:
            return None
        return FileStatusRecord.from_row(row)

    def upsert_file_status(
        self,
        path: str,
        last_modified: float,
        status: UploadStatus = UploadStatus.PENDING,
        size: int = 0,
    ) -> FileStatusRecord:
        """Create or refresh a file record.

        An uploaded record with the same fingerprint is left uploaded. A new
        fingerprint replaces the record with the given status.

        Returns:
            The record as stored.
        """
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM files WHERE path = ?", (path,)
            ).fetchone()
            if row is not None:
                current = FileStatusRecord.from_row(row)
                if (
                    current.last_modified == last_modified
                    and current.upload_status == UploadStatus.UPLOADED
                ):
                    return current

            uploaded_at = time.time() if status == UploadStatus.UPLOADED else None
            conn.execute(
                """
                INSERT OR REPLACE INTO files (
                    path, last_modified, size, upload_status, uploaded_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (path, last_modified, size, status.value, uploaded_at),
            )
        return FileStatusRecord(path, last_modified, size, status, uploaded_at)

    def mark_file_uploaded(self, path: str) -> None:
        """Mark a whole file as uploaded.

        Raises:
            LedgerError: If the file has no record.
        """
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE files SET upload_status = ?, uploaded_at = ? WHERE path = ?",
                (UploadStatus.UPLOADED.value, time.time(), path),
            )
        if cursor.rowcount == 0:
            raise LedgerError(f"No file record for {path}")

    # === Transfers ===

    def create_transfer(
        self,
        source_path: str,
        last_modified: float,
        size: int,
        piece_size: int = MAX_OBJECT_SIZE,
    ) -> TransferRecord:
        """Allocate a new transfer for an oversized file."""
        record = TransferRecord(
            transfer_id=uuid.uuid4().hex,
            source_path=source_path,
            last_modified=last_modified,
            size=size,
            piece_size=piece_size,
            status=TransferStatus.SPLITTING,
            created_at=time.time(),
        )
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO transfers (
                    transfer_id, source_path, last_modified, size, piece_size,
                    status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.transfer_id,
                    record.source_path,
                    record.last_modified,
                    record.size,
                    record.piece_size,
                    record.status.value,
                    record.created_at,
                ),
            )
        logger.debug(f"Created transfer {record.transfer_id} for {source_path}")
        return record

    def get_transfer(self, transfer_id: str) -> TransferRecord | None:
        """Get a transfer by id."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM transfers WHERE transfer_id = ?",
                (transfer_id,),
            ).fetchone()
        return TransferRecord.from_row(row) if row else None

    def list_transfers(
        self,
        source_path: str | None = None,
        open_only: bool = False,
    ) -> list[TransferRecord]:
        """List transfers, oldest first.

        Args:
            source_path: Only transfers of this source file.
            open_only: Only transfers that can still be resumed.
        """
        query = "SELECT * FROM transfers"
        clauses: list[str] = []
        values: list[object] = []
        if source_path is not None:
            clauses.append("source_path = ?")
            values.append(source_path)
        if open_only:
            clauses.append(f"status IN ({', '.join('?' for _ in _OPEN_STATUSES)})")
            values.extend(_OPEN_STATUSES)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at, rowid"

        with self._lock:
            rows = self._conn.execute(query, values).fetchall()
        return [TransferRecord.from_row(row) for row in rows]

    def find_open_transfer(
        self,
        source_path: str,
        last_modified: float,
        size: int,
        piece_size: int = MAX_OBJECT_SIZE,
    ) -> TransferRecord | None:
        """Find a resumable transfer for this exact fingerprint and piece size."""
        for record in reversed(self.list_transfers(source_path, open_only=True)):
            if (
                record.last_modified == last_modified
                and record.size == size
                and record.piece_size == piece_size
            ):
                return record
        return None

    def set_transfer_status(self, transfer_id: str, status: TransferStatus) -> None:
        """Update a transfer's status.

        Raises:
            LedgerError: If the transfer does not exist.
        """
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE transfers SET status = ? WHERE transfer_id = ?",
                (status.value, transfer_id),
            )
        if cursor.rowcount == 0:
            raise LedgerError(f"No transfer {transfer_id}")

    def abandon_stale_transfers(
        self,
        source_path: str,
        last_modified: float,
        size: int,
        piece_size: int = MAX_OBJECT_SIZE,
    ) -> list[str]:
        """Mark open transfers of another fingerprint or piece size as abandoned.

        Returns:
            Ids of the transfers that were abandoned.
        """
        stale = [
            record.transfer_id
            for record in self.list_transfers(source_path, open_only=True)
            if (
                record.last_modified != last_modified
                or record.size != size
                or record.piece_size != piece_size
            )
        ]
        for transfer_id in stale:
            logger.warning(f"Abandoning stale transfer {transfer_id} for {source_path}")
            self.set_transfer_status(transfer_id, TransferStatus.ABANDONED)
        return stale

    # === Parts ===

    def record_parts(
        self,
        transfer_id: str,
        part_paths: Sequence[str],
        sizes: Sequence[int] | None = None,
        complete: bool = True,
    ) -> list[PartRecord]:
        """Record the pieces of a transfer, in sequence order.

        Sequence numbers are the positions in part_paths. Re-recording a part
        with the same path and size keeps its upload status, so resuming
        never downgrades an uploaded part. A part whose path or size changed
        goes back to pending.

        Args:
            transfer_id: Owning transfer.
            part_paths: Part paths in sequence order.
            sizes: Piece sizes, parallel to part_paths.
            complete: part_paths is the whole split; rows past its end are
                deleted. Pass False for the pieces of a split that failed.

        Returns:
            All part records of the transfer.
        """
        if sizes is not None and len(sizes) != len(part_paths):
            raise ValueError("sizes must match part_paths")

        with self._transaction() as conn:
            for sequence, part_path in enumerate(part_paths):
                size = sizes[sequence] if sizes is not None else 0
                conn.execute(
                    """
                    INSERT INTO parts (
                        transfer_id, sequence, part_path, size, upload_status
                    ) VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT (transfer_id, sequence) DO UPDATE SET
                        upload_status = CASE
                            WHEN parts.part_path = excluded.part_path
                                AND parts.size = excluded.size
                            THEN parts.upload_status
                            ELSE excluded.upload_status
                        END,
                        uploaded_at = CASE
                            WHEN parts.part_path = excluded.part_path
                                AND parts.size = excluded.size
                            THEN parts.uploaded_at
                            ELSE NULL
                        END,
                        part_path = excluded.part_path,
                        size = excluded.size
                    """,
                    (transfer_id, sequence, part_path, size, UploadStatus.PENDING.value),
                )
            if complete:
                deleted = conn.execute(
                    "DELETE FROM parts WHERE transfer_id = ? AND sequence >= ?",
                    (transfer_id, len(part_paths)),
                ).rowcount
                if deleted:
                    logger.warning(
                        f"Dropped {deleted} stale parts past the end of transfer {transfer_id}"
                    )
        return self.list_parts(transfer_id)

    def mark_part_uploaded(self, transfer_id: str, part_path: str) -> None:
        """Mark one part as uploaded.

        Raises:
            LedgerError: If the part is not recorded for this transfer.
        """
        with self._lock:
            cursor = self._conn.execute(
                """
                UPDATE parts SET upload_status = ?, uploaded_at = ?
                WHERE transfer_id = ? AND part_path = ?
                """,
                (UploadStatus.UPLOADED.value, time.time(), transfer_id, part_path),
            )
        if cursor.rowcount == 0:
            raise LedgerError(f"No part {part_path} in transfer {transfer_id}")

    def list_parts(self, transfer_id: str) -> list[PartRecord]:
        """List the parts of a transfer ordered by sequence."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM parts WHERE transfer_id = ? ORDER BY sequence",
                (transfer_id,),
            ).fetchall()
        return [PartRecord.from_row(row) for row in rows]

    def pending_parts(self, transfer_id: str) -> list[PartRecord]:
        """List the parts of a transfer that are not uploaded yet."""
        return [
            part for part in self.list_parts(transfer_id)
            if part.upload_status == UploadStatus.PENDING
        ]

    # === Queries ===

    def is_current(self, path: str, last_modified: float) -> bool:
        """Check if this version of a file is already fully uploaded."""
        record = self.get_file(path)
        if (
            record is not None
            and record.last_modified == last_modified
            and record.upload_status == UploadStatus.UPLOADED
        ):
            return True

        return any(
            transfer.status == TransferStatus.COMPLETE
            and transfer.last_modified == last_modified
            for transfer in self.list_transfers(path)
        )

    def summary(self) -> dict[str, int]:
        """Count records by status."""
        with self._lock:
            files = self._count("SELECT upload_status, COUNT(*) FROM files GROUP BY upload_status")
            transfers = self._count("SELECT status, COUNT(*) FROM transfers GROUP BY status")
            parts = self._count("SELECT upload_status, COUNT(*) FROM parts GROUP BY upload_status")
        return {
            "files_pending": files.get(UploadStatus.PENDING.value, 0),
            "files_uploaded": files.get(UploadStatus.UPLOADED.value, 0),
            "transfers_open": sum(transfers.get(s, 0) for s in _OPEN_STATUSES),
            "transfers_complete": transfers.get(TransferStatus.COMPLETE.value, 0),
            "parts_pending": parts.get(UploadStatus.PENDING.value, 0),
            "parts_uploaded": parts.get(UploadStatus.UPLOADED.value, 0),
        }

    def _count(self, query: str) -> dict[str, int]:
        return {row[0]: row[1] for row in self._conn.execute(query).fetchall()}

    # === Sync state ===

    def get_state(self, key: str) -> str | None:
        """Get a sync state value."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM sync_state WHERE key = ?",
                (key,),
            ).fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set a sync state value."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_last_sync_at(self) -> float | None:
        """Get timestamp of last successful sync."""
        value = self.get_state("last_sync_at")
        return float(value) if value else None

    def set_last_sync_at(self, timestamp: float) -> None:
        """Set timestamp of last successful sync."""
        self.set_state("last_sync_at", str(timestamp))
