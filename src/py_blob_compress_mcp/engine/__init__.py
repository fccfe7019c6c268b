"""对象压缩处理引擎模块。

包含单对象替换编排、批量处理和配置构建等核心处理逻辑。
"""

from .batch import BatchRunner
from .config import ConfigBuilder, build_settings
from .replacement import ReplacementOrchestrator


__all__ = [
    "BatchRunner",
    "ConfigBuilder",
    "ReplacementOrchestrator",
    "build_settings",
]
