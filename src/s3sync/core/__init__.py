"""Core module - Shared types, configuration, and splitting."""

from s3sync.core.config import SyncConfig
from s3sync.core.splitting import (
    MAX_OBJECT_SIZE,
    STAGING_DIR_NAME,
    SizeClass,
    classify,
    cleanup_staging,
    iter_pieces,
    piece_name,
)
from s3sync.core.types import StorageClass, TransferStatus, UploadStatus

__all__ = [
    # Config
    "SyncConfig",
    # Splitting
    "MAX_OBJECT_SIZE",
    "STAGING_DIR_NAME",
    "SizeClass",
    "classify",
    "cleanup_staging",
    "iter_pieces",
    "piece_name",
    # Types
    "StorageClass",
    "TransferStatus",
    "UploadStatus",
]
