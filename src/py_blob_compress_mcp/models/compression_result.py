"""压缩结果模型。

定义压缩决策、单对象替换结果和批量进度的数据结构。
"""

from enum import Enum

from humanize import naturaldelta, naturalsize
from pydantic import BaseModel, Field


class BaseResult(BaseModel):
    """结果基类，包含通用方法"""

    @staticmethod
    def format_size(size_bytes: int) -> str:
        """格式化文件大小为人类可读格式（负数表示增大）"""
        if size_bytes < 0:
            return f"-{naturalsize(-size_bytes, binary=True)}"
        return naturalsize(size_bytes, binary=True)


class ImageProbe(BaseModel):
    """按内容探测得到的图像基础信息"""

    format: str = Field(description="Pillow 识别的格式")
    width: int = Field(gt=0, description="宽度")
    height: int = Field(gt=0, description="高度")
    byte_size: int = Field(ge=0, description="字节大小")


class CompressionDecision(BaseResult):
    """压缩引擎的决策结果

    只在内存中流转，不直接持久化；持久化的是它带来的元数据标记和新内容。
    """

    is_compressed: bool = Field(description="是否重新编码")
    is_resized: bool = Field(False, description="是否调整了尺寸")
    data: bytes = Field(repr=False, description="输出内容（直通时与输入相同）")
    format: str | None = Field(None, description="探测到的原始格式")
    original_dimensions: tuple[int, int] | None = Field(None, description="原始尺寸")
    final_dimensions: tuple[int, int] | None = Field(None, description="最终尺寸")

    @property
    def is_passthrough(self) -> bool:
        """是否为直通（内容未改变）"""
        return not self.is_compressed


class ReplacementState(str, Enum):
    """替换流程状态，严格按顺序推进"""

    FETCHING = "fetching"
    BUFFERING = "buffering"
    CHECKPOINTING = "checkpointing"
    TRANSFORMING = "transforming"
    DELETING = "deleting"
    HASHING = "hashing"
    REINSERTING = "reinserting"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED_BEFORE_CHECKPOINT = "failed_before_checkpoint"
    FAILED_AFTER_DELETE = "failed_after_delete"


class ReplacementResult(BaseResult):
    """单个对象替换（压缩/恢复/内容替换）的结果"""

    blob_id: str = Field(description="对象标识")
    state: ReplacementState = Field(ReplacementState.DONE, description="最终状态")
    original_size: int = Field(description="替换前大小（字节）")
    new_size: int = Field(description="替换后大小（字节）")
    is_compressed: bool = Field(False, description="内容是否经过重新编码")
    is_resized: bool = Field(False, description="是否调整了尺寸")
    old_md5: str | None = Field(None, description="替换前内容哈希")
    md5: str = Field(description="替换后内容哈希")

    @property
    def bytes_freed(self) -> int:
        """释放的字节数，输出变大时为负数"""
        return self.original_size - self.new_size

    def get_summary(self) -> str:
        """替换结果摘要"""
        return (
            f"{self.blob_id}: {self.format_size(self.original_size)} → "
            f"{self.format_size(self.new_size)} "
            f"(释放 {self.format_size(self.bytes_freed)})"
        )


class BatchProgress(BaseResult):
    """批量压缩的运行计数，只在一次运行内有效"""

    mimetype: str = Field(description="处理的 MIME 类型")
    items_processed: int = Field(0, description="成功处理的数量")
    items_failed: int = Field(0, description="失败数量")
    bytes_freed: int = Field(0, description="释放的字节数，可能为负")
    elapsed_seconds: float = Field(0.0, description="耗时（秒）")
    failed_ids: list[str] = Field(default_factory=list, description="失败的对象 id")

    def get_total_count(self) -> int:
        """尝试处理的总数"""
        return self.items_processed + self.items_failed

    def get_success_rate(self) -> float:
        """成功率（百分比）"""
        total = self.get_total_count()
        if total == 0:
            return 0.0
        return (self.items_processed / total) * 100

    def get_summary(self) -> str:
        """批量处理摘要"""
        return (
            f"[{self.mimetype}] 处理 "
            f"{self.items_processed}/{self.get_total_count()} 个对象 "
            f"(成功率 {self.get_success_rate():.1f}%), "
            f"释放 {self.format_size(self.bytes_freed)}, "
            f"耗时 {naturaldelta(self.elapsed_seconds)}"
        )
