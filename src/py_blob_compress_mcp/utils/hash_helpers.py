"""内容哈希工具模块。

对字节串或文件计算固定长度的十六进制摘要，用于记录替换前后的内容变化。
"""

import hashlib
from pathlib import Path


_READ_BLOCK_SIZE = 1024 * 1024


def compute_md5(source: bytes | bytearray | memoryview | str | Path) -> str:
    """计算内容的 MD5 摘要

    Args:
        source: 字节内容，或文件路径（按块读取，不整体载入内存）

    Returns:
        str: 32 位十六进制摘要
    """
    digest = hashlib.md5()  # noqa: S324

    if isinstance(source, str | Path):
        with Path(source).open("rb") as fh:
            while block := fh.read(_READ_BLOCK_SIZE):
                digest.update(block)
    else:
        digest.update(source)

    return digest.hexdigest()


def new_md5():
    """返回增量 MD5 计算器，供流式写入使用"""
    return hashlib.md5()  # noqa: S324
