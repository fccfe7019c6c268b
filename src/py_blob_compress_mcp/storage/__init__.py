"""存储模块包。

分块对象存储与恢复检查点存储。
"""

from .base import BaseBlobStore, BlobStore, BlobWriter, new_blob_id, validate_blob_id
from .checkpoint import CheckpointStore
from .file import FileBlobStore
from .memory import MemoryBlobStore


__all__ = [
    "BaseBlobStore",
    "BlobStore",
    "BlobWriter",
    "CheckpointStore",
    "FileBlobStore",
    "MemoryBlobStore",
    "new_blob_id",
    "validate_blob_id",
]
