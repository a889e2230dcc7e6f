"""Configuration classes for s3sync.

This module defines the sync configuration shared by the CLI and the
object store factory.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from s3sync.core.splitting import MAX_OBJECT_SIZE


@dataclass
class SyncConfig:
    """Configuration for syncing a folder to a bucket.

    Attributes:
        sync_folder: Local directory tree to upload.
        bucket: Target bucket name.
        region: Bucket region (default us-east-1).
        endpoint_url: Custom endpoint URL (MinIO, OVH, ...), None for AWS.
        storage: Store backend, "s3" or "local".
        local_store_path: Directory used by the "local" backend.
        filters: File name suffixes to sync. Empty means every file.
        deep: Upload to the archival storage tier by default.
        max_object_size: Files larger than this are split into parts.
    """

    sync_folder: str
    bucket: str = ""
    region: str = "us-east-1"
    endpoint_url: str | None = None
    storage: str = "s3"
    local_store_path: str | None = None
    filters: list[str] = field(default_factory=list)
    deep: bool = False
    max_object_size: int = MAX_OBJECT_SIZE

    def __post_init__(self) -> None:
        """Normalize paths and filters."""
        self.sync_folder = str(Path(self.sync_folder).expanduser())
        if self.endpoint_url:
            self.endpoint_url = self.endpoint_url.rstrip("/")
        else:
            self.endpoint_url = None
        self.filters = [f.strip() for f in self.filters if f.strip()]
        if self.storage not in ("s3", "local"):
            raise ValueError(f"Unknown storage type: {self.storage}")
        if self.storage == "s3" and not self.bucket:
            raise ValueError("S3 storage requires a bucket")
        if self.max_object_size <= 0:
            raise ValueError("max_object_size must be positive")

    @property
    def base_path(self) -> Path:
        """Resolved sync folder."""
        return Path(self.sync_folder).resolve()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Build a config from a loaded JSON mapping, ignoring unknown keys."""
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def storage_options(self) -> dict[str, str | None]:
        """Options for s3sync.storage.create_store()."""
        return {
            "type": self.storage,
            "bucket": self.bucket,
            "region": self.region,
            "endpoint_url": self.endpoint_url,
            "local_path": self.local_store_path,
        }
