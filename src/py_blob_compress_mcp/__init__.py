"""分块对象存储的图像重新压缩服务。

在保持对象 id 不变的前提下重新编码存储中的大图像，
并通过持久化检查点在中途崩溃后恢复。
"""

__version__ = "0.1.0"
__author__ = "crper"
__description__ = "分块对象存储的图像重新压缩服务，基于 Pillow 11"

# 核心功能导出
from .compressor import BlobCompressor
from .core.compression_engine import CompressionEngine
from .engine.batch import BatchRunner
from .engine.replacement import ReplacementOrchestrator
from .models import BatchProgress, BlobRecord, CompressionDecision, ReplacementResult
from .storage import CheckpointStore, FileBlobStore, MemoryBlobStore


__all__ = [
    "BatchProgress",
    "BatchRunner",
    "BlobCompressor",
    "BlobRecord",
    "CheckpointStore",
    "CompressionDecision",
    "CompressionEngine",
    "FileBlobStore",
    "MemoryBlobStore",
    "ReplacementOrchestrator",
    "ReplacementResult",
    "get_version",
]


def get_version() -> str:
    """获取版本号。"""
    return __version__
