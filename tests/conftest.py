"""Shared fixtures for s3sync tests."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from s3sync.state import Ledger
from s3sync.storage import LocalFSObjectStore


@pytest.fixture
def ledger(tmp_path: Path) -> Iterator[Ledger]:
    """Create a Ledger instance."""
    s = Ledger(tmp_path / "state.db")
    yield s
    s.close()


@pytest.fixture
def sync_root(tmp_path: Path) -> Path:
    """Create an empty sync folder."""
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def local_store(tmp_path: Path) -> LocalFSObjectStore:
    """Create a local object store."""
    return LocalFSObjectStore(tmp_path / "store")


@pytest.fixture
def make_file(sync_root: Path) -> Callable[..., Path]:
    """Return a helper writing a file under the sync folder.

    The helper takes a relative path, the content and an optional mtime.
    """

    def _make(relative: str, data: bytes = b"data", mtime: float | None = None) -> Path:
        path = sync_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _make


@pytest.fixture
def list_tree() -> Callable[[Path], list[str]]:
    """Return a helper listing every file under a directory.

    Paths are relative, forward-slash separated and sorted.
    """

    def _list(root: Path) -> list[str]:
        return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())

    return _list
