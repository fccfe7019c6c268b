"""工具模块包。

提供纯工具函数，不包含业务逻辑。
"""

# 从分块工具模块导入
from .chunk_helpers import split_into_chunks

# 从哈希工具模块导入
from .hash_helpers import compute_md5, new_md5

# 从日志工具模块导入
from .logging_helpers import configure_logging, get_logger

# 从消息格式化模块导入
from .message_formatter import (
    MessageFormatter,
    format_validation_error,
)


__all__ = [
    "MessageFormatter",
    "compute_md5",
    "configure_logging",
    "format_validation_error",
    "get_logger",
    "new_md5",
    "split_into_chunks",
]
