"""统一配置管理模块。

提供应用程序的全局配置管理，包括默认值、环境变量支持等。
"""

import os
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CompressionDefaults:
    """压缩相关的默认配置"""

    # 质量与尺寸
    QUALITY: int = 55
    MAX_HEIGHT: int = 2000

    # 小于等于该大小的图像不再压缩
    MIN_SIZE_BYTES: int = 500_000

    # 输出格式固定为 JPEG
    OUTPUT_FORMAT: str = "JPEG"

    # 允许重新编码的格式（Pillow 格式名）
    VALID_FORMATS: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {"JPEG", "WEBP", "GIF", "PNG", "TIFF", "AVIF"}
        )
    )


@dataclass(frozen=True)
class StorageDefaults:
    """存储相关的默认配置"""

    # 对象存储根目录
    STORE_ROOT: str = "data/blobs"

    # 恢复检查点目录，位于对象存储之外
    RECOVERY_DIR: str = "data/recovery"

    # 分块大小，与 GridFS 默认值一致
    CHUNK_SIZE: int = 255 * 1024


@dataclass(frozen=True)
class ProcessingDefaults:
    """处理相关的默认配置"""

    # 批量处理按 id 倒序（新对象优先）
    SORT_DESCENDING: bool = True

    # 进度日志间隔
    PROGRESS_REPORT_INTERVAL: int = 10

    # 列表接口分页大小
    PAGE_SIZE: int = 50


@dataclass(frozen=True)
class LoggingDefaults:
    """日志相关的默认配置"""

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class AppConfig:
    """应用程序配置管理器

    支持环境变量覆盖默认配置
    """

    def __init__(self):
        self.compression = CompressionDefaults()
        self.storage = StorageDefaults()
        self.processing = ProcessingDefaults()
        self.logging = LoggingDefaults()

        # 从环境变量加载配置
        self._load_from_env()

    def _load_from_env(self):
        """从环境变量加载配置"""
        # 压缩配置
        if quality := os.getenv("PBC_QUALITY"):
            object.__setattr__(self.compression, "QUALITY", int(quality))

        if max_height := os.getenv("PBC_MAX_HEIGHT"):
            object.__setattr__(self.compression, "MAX_HEIGHT", int(max_height))

        if min_size := os.getenv("PBC_MIN_SIZE_BYTES"):
            object.__setattr__(self.compression, "MIN_SIZE_BYTES", int(min_size))

        # 存储配置
        if store_root := os.getenv("PBC_STORE_ROOT"):
            object.__setattr__(self.storage, "STORE_ROOT", store_root)

        if recovery_dir := os.getenv("PBC_RECOVERY_DIR"):
            object.__setattr__(self.storage, "RECOVERY_DIR", recovery_dir)

        if chunk_size := os.getenv("PBC_CHUNK_SIZE"):
            object.__setattr__(self.storage, "CHUNK_SIZE", int(chunk_size))

        # 日志配置
        if log_level := os.getenv("PBC_LOG_LEVEL"):
            object.__setattr__(self.logging, "LOG_LEVEL", log_level.upper())


# 全局配置实例
config = AppConfig()


def get_config() -> AppConfig:
    """获取全局配置实例"""
    return config


def reset_config():
    """重置配置（主要用于测试）"""
    global config
    config = AppConfig()
