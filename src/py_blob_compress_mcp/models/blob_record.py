"""对象记录模型。

定义分块对象存储中单个对象的描述信息，以及查询过滤、排序、聚合结果。
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from humanize import naturalsize
from pydantic import BaseModel, Field, computed_field

from .constants import MetadataKeys, StorageDefaults


def utc_now() -> datetime:
    """返回带时区的当前 UTC 时间"""
    return datetime.now(timezone.utc)


class BlobRecord(BaseModel):
    """存储对象的元数据

    `id` 在整个生命周期内保持不变，替换内容后同一 id 指向新内容。
    """

    id: str = Field(description="对象标识")
    filename: str = Field(description="文件名")
    length: int = Field(ge=0, description="内容长度（字节）")
    chunk_size: int = Field(gt=0, description="分块大小（字节）")
    upload_date: datetime = Field(default_factory=utc_now, description="上传时间")
    md5: str = Field(description="内容哈希")
    content_type: str | None = Field(None, description="内容类型")
    metadata: dict[str, Any] = Field(default_factory=dict, description="自定义元数据")

    @computed_field
    def chunk_count(self) -> int:
        """分块数量"""
        if self.length == 0:
            return 0
        return (self.length + self.chunk_size - 1) // self.chunk_size

    @property
    def mimetype(self) -> str | None:
        """metadata 中记录的 MIME 类型"""
        return self.metadata.get(MetadataKeys.MIMETYPE)

    @property
    def is_compressed(self) -> bool:
        """是否已经压缩过"""
        return bool(self.metadata.get(MetadataKeys.IS_COMPRESSED))

    def get_length_human(self) -> str:
        """人性化显示内容长度"""
        return naturalsize(self.length, binary=True)

    def effective_mime_type(self) -> str:
        """下载时使用的 MIME 类型，缺失时回退为通用类型"""
        return self.mimetype or self.content_type or StorageDefaults.GENERIC_MIME_TYPE


class SortOrder(str, Enum):
    """按 id 排序的方向"""

    ASCENDING = "asc"
    DESCENDING = "desc"


class BlobFilter(BaseModel):
    """对象查询过滤条件

    所有字段都为空时匹配全部对象。
    """

    mimetype: str | None = Field(None, description="匹配 metadata.mimetype")
    container: str | None = Field(None, description="匹配 metadata.container")
    uncompressed_only: bool = Field(
        False, description="只匹配 metadata 中没有 isCompressed 的对象"
    )

    def matches(self, record: BlobRecord) -> bool:
        """判断记录是否满足过滤条件"""
        metadata = record.metadata
        if (
            self.mimetype is not None
            and metadata.get(MetadataKeys.MIMETYPE) != self.mimetype
        ):
            return False
        if (
            self.container is not None
            and metadata.get(MetadataKeys.CONTAINER) != self.container
        ):
            return False
        return not (self.uncompressed_only and MetadataKeys.IS_COMPRESSED in metadata)


class TypeStats(BaseModel):
    """按类型聚合的数量与总大小"""

    count: int = Field(0, description="对象数量")
    total_size: int = Field(0, description="总大小（字节）")

    def get_total_size_human(self) -> str:
        """人性化显示总大小"""
        return naturalsize(self.total_size, binary=True)


class RecoveryCheckpoint(BaseModel):
    """恢复检查点：原始内容删除前保存的记录与哈希

    原始字节单独保存在同名 .bin 文件中。
    """

    blob_id: str = Field(description="对象标识")
    record: BlobRecord = Field(description="删除前的原始记录")
    old_md5: str = Field(description="原始内容哈希")
    byte_size: int = Field(ge=0, description="原始内容长度（字节）")
    created_at: datetime = Field(default_factory=utc_now, description="创建时间")
