"""压缩配置模型。

定义压缩引擎的固定配置参数（构造时确定，不随单次调用变化）。
"""

from PIL import Image
from pydantic import BaseModel, Field, field_validator

from .constants import ImageFormats, QualityDefaults, ValidationLimits, get_format_alias


class EngineSettings(BaseModel):
    """压缩引擎配置"""

    model_config = {"frozen": True}

    valid_formats: frozenset[str] = Field(
        default=ImageFormats.VALID_FORMATS, description="允许重新编码的格式"
    )
    quality: int = Field(
        QualityDefaults.DEFAULT,
        ge=QualityDefaults.MIN_QUALITY,
        le=QualityDefaults.MAX_QUALITY,
        description="输出质量",
    )
    max_height: int = Field(
        2000, gt=0, le=ValidationLimits.MAX_DIMENSION, description="最大高度"
    )
    min_size_bytes: int = Field(500_000, ge=0, description="压缩阈值（字节）")
    output_format: str = Field(ImageFormats.OUTPUT_FORMAT, description="输出格式")

    @field_validator("valid_formats", mode="before")
    @classmethod
    def normalize_valid_formats(cls, v: object) -> frozenset[str]:
        if isinstance(v, str):
            v = [v]
        return frozenset(
            get_format_alias(str(fmt)) for fmt in v  # type: ignore[union-attr]
        )

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        return CompressionValidators.validate_format(v)


# ============================================================================
# 验证器类 - 集中的参数验证逻辑
# ============================================================================


class CompressionValidators:
    """压缩相关的验证器集合"""

    @staticmethod
    def validate_format(format_str: str) -> str:
        """验证并标准化格式名称

        Args:
            format_str: 格式字符串

        Returns:
            str: 标准化的格式名称

        Raises:
            ValueError: 格式不支持时
        """
        if not format_str:
            raise ValueError("格式不能为空")

        standard_format = get_format_alias(format_str)
        supported_formats = {
            fmt.upper() for fmt in Image.registered_extensions().values() if fmt
        }

        if standard_format not in supported_formats:
            available = sorted(supported_formats)
            raise ValueError(
                f"不支持的格式: {format_str}。可用格式: {', '.join(available)}"
            )

        return standard_format

    @staticmethod
    def validate_quality(quality: int | None) -> int | None:
        """验证质量参数

        Raises:
            ValueError: 质量值无效时
        """
        if quality is None:
            return None

        if not isinstance(quality, int) or not (
            QualityDefaults.MIN_QUALITY <= quality <= QualityDefaults.MAX_QUALITY
        ):
            raise ValueError(f"质量值必须在 1-100 之间的整数，得到: {quality}")

        return quality

    @staticmethod
    def validate_chunk_size(chunk_size: int) -> int:
        """验证分块大小

        Raises:
            ValueError: 分块大小超出范围时
        """
        if not (
            ValidationLimits.MIN_CHUNK_SIZE
            <= chunk_size
            <= ValidationLimits.MAX_CHUNK_SIZE
        ):
            raise ValueError(
                f"分块大小必须在 {ValidationLimits.MIN_CHUNK_SIZE}-"
                f"{ValidationLimits.MAX_CHUNK_SIZE} 之间，得到: {chunk_size}"
            )
        return chunk_size
