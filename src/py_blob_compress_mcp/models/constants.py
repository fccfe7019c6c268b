"""对象存储与图像处理相关常量定义。

集中管理有效格式、元数据键名、分块大小等，避免各模块硬编码重复。
"""

from typing import Final


class ImageFormats:
    """基于 Pillow 格式名的图像格式管理"""

    # 允许重新编码的格式（按内容签名识别，不看扩展名）
    VALID_FORMATS: Final[frozenset[str]] = frozenset(
        {"JPEG", "WEBP", "GIF", "PNG", "TIFF", "AVIF"}
    )

    # 用户友好的别名
    ALIASES: Final[dict[str, str]] = {
        "JPG": "JPEG",
        "TIF": "TIFF",
        # 带多图数据（MPF）的相机 JPEG 被 Pillow 识别为 MPO
        "MPO": "JPEG",
    }

    # 固定输出格式
    OUTPUT_FORMAT: Final[str] = "JPEG"


class MetadataKeys:
    """对象 metadata 中约定的键名（与已有数据保持兼容，使用 camelCase）"""

    CONTAINER: Final[str] = "container"
    MIMETYPE: Final[str] = "mimetype"
    IS_COMPRESSED: Final[str] = "isCompressed"
    MD5: Final[str] = "md5"
    OLD_MD5: Final[str] = "oldMd5"


class StorageDefaults:
    """存储相关默认值"""

    # 与 GridFS 默认分块大小一致
    CHUNK_SIZE: Final[int] = 255 * 1024

    # 无法确定类型时的通用 MIME
    GENERIC_MIME_TYPE: Final[str] = "application/octet-stream"


class QualityDefaults:
    """质量相关默认值"""

    DEFAULT: Final[int] = 55
    MIN_QUALITY: Final[int] = 1
    MAX_QUALITY: Final[int] = 100


class ValidationLimits:
    """验证相关限制"""

    # 图像高度上限
    MAX_DIMENSION: Final[int] = 50000

    # 分块大小上下限
    MIN_CHUNK_SIZE: Final[int] = 1024
    MAX_CHUNK_SIZE: Final[int] = 16 * 1024 * 1024


# 便捷访问函数
def get_format_alias(format_str: str) -> str:
    """获取格式的标准名称"""
    format_upper = format_str.upper()
    return ImageFormats.ALIASES.get(format_upper, format_upper)

