"""Object store abstraction for uploaded files and parts.

This module provides:
- Abstract interface for the object store
- LocalFSObjectStore for development/testing
- S3ObjectStore for production (AWS, OVH, MinIO)
"""

from __future__ import annotations

import json
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from s3sync.core.types import StorageClass

if TYPE_CHECKING:
    from typing import Any


class ObjectStore(ABC):
    """Abstract interface for the remote object store.

    put() performs no retry; callers may retry since overwriting a key with
    the same body is harmless.
    """

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of where objects are stored."""

    @abstractmethod
    def put(
        self,
        key: str,
        body: BinaryIO,
        storage_class: StorageClass = StorageClass.STANDARD,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Store an object.

        Args:
            key: Object key (forward-slash separated).
            body: Readable binary stream with the object content.
            storage_class: Storage tier.
            metadata: Optional user metadata stored with the object.
        """

    @abstractmethod
    def head(self, key: str) -> dict[str, str] | None:
        """Return an object's user metadata, or None if it doesn't exist."""


class LocalFSObjectStore(ObjectStore):
    """Local filesystem store for development and testing.

    Objects are stored at ``<base>/<key>``; metadata and storage class are
    kept in a JSON sidecar under ``<base>/.meta/``.
    """

    def __init__(self, base_path: Path | str) -> None:
        """Initialize local storage.

        Args:
            base_path: Base directory for object storage.
        """
        self._base_path = Path(base_path).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def location(self) -> str:
        """Return the local storage path."""
        return f"Local filesystem: {self._base_path}"

    def _object_path(self, key: str) -> Path:
        path = (self._base_path / key).resolve()
        if self._base_path not in path.parents:
            raise ValueError(f"Invalid object key: {key}")
        return path

    def _meta_path(self, key: str) -> Path:
        return self._base_path / ".meta" / f"{key}.json"

    def put(
        self,
        key: str,
        body: BinaryIO,
        storage_class: StorageClass = StorageClass.STANDARD,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Store an object."""
        path = self._object_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            shutil.copyfileobj(body, f)

        meta_path = self._meta_path(key)
        meta_path.parent.mkdir(parents=True, exist_ok=True)
        meta_path.write_text(json.dumps({
            "storage_class": storage_class.value,
            "metadata": metadata or {},
        }))

    def head(self, key: str) -> dict[str, str] | None:
        """Return an object's metadata."""
        if not self._object_path(key).exists():
            return None
        meta_path = self._meta_path(key)
        if not meta_path.exists():
            return {}
        return dict(json.loads(meta_path.read_text())["metadata"])


class S3ObjectStore(ObjectStore):
    """S3-compatible store for production (AWS, OVH, MinIO, etc.).

    Credentials come from the standard boto3 chain unless given explicitly.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str = "us-east-1",
    ) -> None:
        """Initialize S3 storage.

        Args:
            bucket: S3 bucket name.
            endpoint_url: Custom endpoint URL (for OVH, MinIO, etc.).
            access_key: AWS access key ID.
            secret_key: AWS secret access key.
            region: AWS region (default: us-east-1).
        """
        import boto3

        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._client: Any = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    @property
    def location(self) -> str:
        """Return the S3 bucket location."""
        if self._endpoint_url:
            return f"S3: {self._endpoint_url}/{self._bucket}"
        return f"S3: s3://{self._bucket}"

    def put(
        self,
        key: str,
        body: BinaryIO,
        storage_class: StorageClass = StorageClass.STANDARD,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Store an object."""
        self._client.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=body,
            StorageClass=storage_class.value,
            Metadata=metadata or {},
        )

    def head(self, key: str) -> dict[str, str] | None:
        """Return an object's user metadata."""
        from botocore.exceptions import ClientError

        try:
            response = self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return None
            raise
        return dict(response.get("Metadata", {}))


def create_store(config: dict[str, str | None]) -> ObjectStore:
    """Factory function to create an object store from configuration.

    Args:
        config: Storage configuration dict with keys:
            - type: "local" or "s3"
            - For local: local_path
            - For S3: bucket, endpoint_url, access_key, secret_key, region

    Returns:
        Configured ObjectStore instance.

    Raises:
        ValueError: If storage type is unknown or the bucket is missing.
    """
    storage_type = config.get("type", "s3")

    if storage_type == "local":
        local_path = config.get("local_path") or "./objects"
        return LocalFSObjectStore(local_path)

    if storage_type == "s3":
        bucket = config.get("bucket")
        if not bucket:
            raise ValueError("S3 storage requires 'bucket' configuration")
        return S3ObjectStore(
            bucket=bucket,
            endpoint_url=config.get("endpoint_url"),
            access_key=config.get("access_key"),
            secret_key=config.get("secret_key"),
            region=config.get("region") or "us-east-1",
        )

    raise ValueError(f"Unknown storage type: {storage_type}")
