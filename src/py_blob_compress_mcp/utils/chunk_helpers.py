"""字节分块工具模块。"""

from collections.abc import Iterator


def split_into_chunks(data: bytes, chunk_size: int) -> Iterator[bytes]:
    """按固定大小切分字节串，最后一块可能更短；空内容不产出任何块"""
    if chunk_size <= 0:
        raise ValueError(f"分块大小必须大于 0，得到: {chunk_size}")
    for offset in range(0, len(data), chunk_size):
        yield data[offset : offset + chunk_size]
