"""数据模型包。

定义对象存储与压缩流程相关的数据结构和模型。
"""

from .blob_record import (
    BlobFilter,
    BlobRecord,
    RecoveryCheckpoint,
    SortOrder,
    TypeStats,
    utc_now,
)
from .compression_config import CompressionValidators, EngineSettings
from .compression_result import (
    BatchProgress,
    CompressionDecision,
    ImageProbe,
    ReplacementResult,
    ReplacementState,
)
from .constants import (
    ImageFormats,
    MetadataKeys,
    QualityDefaults,
    StorageDefaults,
    ValidationLimits,
    get_format_alias,
)


__all__ = [
    "BatchProgress",
    "BlobFilter",
    "BlobRecord",
    "CompressionDecision",
    "CompressionValidators",
    "EngineSettings",
    "ImageFormats",
    "ImageProbe",
    "MetadataKeys",
    "QualityDefaults",
    "RecoveryCheckpoint",
    "ReplacementResult",
    "ReplacementState",
    "SortOrder",
    "StorageDefaults",
    "TypeStats",
    "ValidationLimits",
    "get_format_alias",
    "utc_now",
]
