"""核心模块包。

图像压缩决策与格式处理。
"""

from .compression_engine import CompressionEngine, StreamStage
from .formats import FormatProcessor, get_save_parameters


__all__ = [
    "CompressionEngine",
    "FormatProcessor",
    "StreamStage",
    "get_save_parameters",
]
