"""对象存储协议与通用实现。

定义分块对象存储的流式读写、删除、查询与聚合接口，
以及各后端共享的写入流、游标和聚合逻辑。
"""

import itertools
import re
import secrets
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from itertools import islice
from typing import Any, Protocol, runtime_checkable

from ..exceptions import BlobNotFoundError, StorageIOError, ValidationError
from ..models.blob_record import BlobFilter, BlobRecord, SortOrder, TypeStats, utc_now
from ..models.constants import MetadataKeys, StorageDefaults
from ..utils.hash_helpers import new_md5


_BLOB_ID_PATTERN = re.compile(r"^[0-9A-Za-z_-]{1,128}$")

# 与 ObjectId 相同的布局：4 字节时间戳 + 5 字节进程随机数 + 3 字节计数器
_PROCESS_RANDOM = secrets.token_hex(5)
_COUNTER = itertools.count(secrets.randbelow(0xFFFFFF))


def new_blob_id() -> str:
    """生成新的对象 id（24 位十六进制，按时间大致递增）"""
    counter = next(_COUNTER) & 0xFFFFFF
    return f"{int(time.time()):08x}{_PROCESS_RANDOM}{counter:06x}"


def validate_blob_id(blob_id: str) -> str:
    """验证对象 id 只包含安全字符"""
    if not isinstance(blob_id, str) or not _BLOB_ID_PATTERN.match(blob_id):
        raise ValidationError(f"非法的对象 id: {blob_id!r}", None)
    return blob_id


def aggregate_records(records: Iterator[BlobRecord]) -> dict[str, TypeStats]:
    """按 metadata.mimetype 分组统计数量与总大小"""
    stats: dict[str, TypeStats] = {}
    for record in records:
        key = record.mimetype or StorageDefaults.GENERIC_MIME_TYPE
        entry = stats.setdefault(key, TypeStats())
        entry.count += 1
        entry.total_size += record.length
    return stats


@runtime_checkable
class BlobStore(Protocol):
    """分块对象存储协议

    除特别说明外，所有读写都以流的方式进行，不整体缓冲。
    """

    def find_by_id(self, blob_id: str) -> BlobRecord:
        """按 id 查找，不存在时抛出 BlobNotFoundError"""
        ...

    def exists(self, blob_id: str) -> bool:
        """id 下是否存在对象"""
        ...

    def find(
        self,
        filter: BlobFilter | None = None,
        skip: int = 0,
        limit: int | None = None,
        sort: SortOrder | None = None,
    ) -> list[BlobRecord]:
        """分页查询"""
        ...

    def count(self, filter: BlobFilter | None = None) -> int:
        """统计数量"""
        ...

    def distinct_mime_types(self) -> set[str]:
        """所有出现过的 metadata.mimetype"""
        ...

    def aggregate_size_by_type(
        self, filter: BlobFilter | None = None
    ) -> dict[str, TypeStats]:
        """按类型聚合数量与总大小"""
        ...

    def open_read_stream(self, blob_id: str) -> tuple[BlobRecord, Iterator[bytes]]:
        """打开读取流，返回记录和逐块产出的字节迭代器"""
        ...

    def open_write_stream(
        self,
        filename: str,
        content_type: str | None = None,
        metadata: dict[str, Any] | None = None,
        chunk_size: int | None = None,
    ) -> "BlobWriter":
        """打开写入流，完成时分配新的 id"""
        ...

    def open_write_stream_with_id(
        self,
        blob_id: str,
        filename: str,
        content_type: str | None = None,
        metadata: dict[str, Any] | None = None,
        chunk_size: int | None = None,
    ) -> "BlobWriter":
        """以调用方指定的 id 打开写入流

        仅供替换/恢复流程使用。存储本身不检查独占，
        调用方必须保证该 id 下没有存活对象。
        """
        ...

    def delete_by_id(self, blob_id: str) -> bool:
        """删除对象，不存在时抛出 BlobNotFoundError"""
        ...

    def open_cursor(
        self, filter: BlobFilter | None = None, sort: SortOrder | None = None
    ) -> Iterator[BlobRecord]:
        """惰性、单次、只进的记录序列

        开始迭代时对 id 列表做一次快照，记录本身在迭代过程中逐个加载，
        不会一次性载入所有记录。
        """
        ...


class BlobWriter(ABC):
    """分块写入流

    写入的数据按 chunk_size 切块落盘，close() 时提交记录并返回。
    作为上下文管理器使用时，块内抛出异常会放弃本次写入。
    """

    def __init__(
        self,
        blob_id: str | None,
        filename: str,
        content_type: str | None = None,
        metadata: dict[str, Any] | None = None,
        chunk_size: int = StorageDefaults.CHUNK_SIZE,
    ):
        if chunk_size <= 0:
            raise ValidationError(f"分块大小必须大于 0，当前值: {chunk_size}")

        self.blob_id = blob_id
        self.filename = filename
        self.content_type = content_type
        self.metadata = dict(metadata or {})
        self.chunk_size = chunk_size

        self.record: BlobRecord | None = None
        self.closed = False
        self.aborted = False

        self._buffer = bytearray()
        self._chunk_index = 0
        self._length = 0
        self._md5 = new_md5()

    @property
    def length(self) -> int:
        """已写入的字节数"""
        return self._length

    def write(self, data: bytes) -> int:
        """写入数据，满一块即落盘"""
        if self.closed:
            raise StorageIOError("写入流已关闭", self.blob_id)

        self._buffer.extend(data)
        self._length += len(data)
        self._md5.update(data)

        while len(self._buffer) >= self.chunk_size:
            self._flush_chunk(bytes(self._buffer[: self.chunk_size]))
            del self._buffer[: self.chunk_size]

        return len(data)

    def close(self) -> BlobRecord:
        """写入剩余数据并提交记录"""
        if self.aborted:
            raise StorageIOError("写入流已放弃", self.blob_id)
        if self.record is not None:
            return self.record

        if self._buffer:
            self._flush_chunk(bytes(self._buffer))
            self._buffer.clear()

        content_hash = self._md5.hexdigest()
        record = BlobRecord(
            id=self.blob_id or new_blob_id(),
            filename=self.filename,
            length=self._length,
            chunk_size=self.chunk_size,
            upload_date=utc_now(),
            md5=content_hash,
            content_type=self.content_type,
            metadata=self.metadata,
        )
        self._commit(record)

        self.closed = True
        self.blob_id = record.id
        self.record = record
        return record

    def abort(self) -> None:
        """放弃写入，清理已落盘的分块"""
        if self.record is not None or self.aborted:
            return
        self.closed = True
        self.aborted = True
        self._buffer.clear()
        self._discard()

    def _flush_chunk(self, chunk: bytes) -> None:
        self._write_chunk(self._chunk_index, chunk)
        self._chunk_index += 1

    @abstractmethod
    def _write_chunk(self, index: int, chunk: bytes) -> None:
        """保存第 index 个分块"""

    @abstractmethod
    def _commit(self, record: BlobRecord) -> None:
        """使记录与分块可见"""

    @abstractmethod
    def _discard(self) -> None:
        """删除未提交的分块"""

    def __enter__(self) -> "BlobWriter":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()


class BaseBlobStore(ABC):
    """对象存储的通用实现

    子类只需提供 id 枚举、记录加载、分块读取、写入流和删除原语，
    查询、分页、聚合都基于惰性游标实现。
    """

    def __init__(self, chunk_size: int = StorageDefaults.CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValidationError(f"分块大小必须大于 0，当前值: {chunk_size}")
        self.chunk_size = chunk_size

    # ------------------------------------------------------------------
    # 后端原语
    # ------------------------------------------------------------------

    @abstractmethod
    def _iter_ids(self, sort: SortOrder | None) -> Iterator[str]:
        """按排序枚举 id"""

    @abstractmethod
    def _load_record(self, blob_id: str) -> BlobRecord | None:
        """加载记录，不存在时返回 None"""

    @abstractmethod
    def _iter_chunks(self, record: BlobRecord) -> Iterator[bytes]:
        """按顺序产出分块"""

    @abstractmethod
    def _new_writer(
        self,
        blob_id: str | None,
        filename: str,
        content_type: str | None,
        metadata: dict[str, Any] | None,
        chunk_size: int,
    ) -> BlobWriter:
        """创建写入流"""

    @abstractmethod
    def _delete(self, blob_id: str) -> None:
        """删除记录与分块"""

    # ------------------------------------------------------------------
    # 公共接口
    # ------------------------------------------------------------------

    def find_by_id(self, blob_id: str) -> BlobRecord:
        record = self._load_record(blob_id)
        if record is None:
            raise BlobNotFoundError(blob_id)
        return record

    def exists(self, blob_id: str) -> bool:
        return self._load_record(blob_id) is not None

    def open_cursor(
        self, filter: BlobFilter | None = None, sort: SortOrder | None = None
    ) -> Iterator[BlobRecord]:
        for blob_id in self._iter_ids(sort):
            record = self._load_record(blob_id)
            # 枚举之后被删除的对象直接跳过
            if record is None:
                continue
            if filter is None or filter.matches(record):
                yield record

    def find(
        self,
        filter: BlobFilter | None = None,
        skip: int = 0,
        limit: int | None = None,
        sort: SortOrder | None = None,
    ) -> list[BlobRecord]:
        if skip < 0 or (limit is not None and limit < 0):
            raise ValidationError(f"分页参数非法: skip={skip}, limit={limit}")
        stop = None if limit is None else skip + limit
        return list(islice(self.open_cursor(filter, sort), skip, stop))

    def count(self, filter: BlobFilter | None = None) -> int:
        return sum(1 for _ in self.open_cursor(filter))

    def distinct_mime_types(self) -> set[str]:
        return {
            record.mimetype for record in self.open_cursor() if record.mimetype
        }

    def aggregate_size_by_type(
        self, filter: BlobFilter | None = None
    ) -> dict[str, TypeStats]:
        return aggregate_records(self.open_cursor(filter))

    def open_read_stream(self, blob_id: str) -> tuple[BlobRecord, Iterator[bytes]]:
        record = self.find_by_id(blob_id)
        return record, self._iter_chunks(record)

    def read_all(self, blob_id: str) -> bytes:
        """读取完整内容（便捷方法，会整体缓冲）"""
        _, stream = self.open_read_stream(blob_id)
        return b"".join(stream)

    def open_write_stream(
        self,
        filename: str,
        content_type: str | None = None,
        metadata: dict[str, Any] | None = None,
        chunk_size: int | None = None,
    ) -> BlobWriter:
        return self._new_writer(
            None, filename, content_type, metadata, chunk_size or self.chunk_size
        )

    def open_write_stream_with_id(
        self,
        blob_id: str,
        filename: str,
        content_type: str | None = None,
        metadata: dict[str, Any] | None = None,
        chunk_size: int | None = None,
    ) -> BlobWriter:
        validate_blob_id(blob_id)
        return self._new_writer(
            blob_id, filename, content_type, metadata, chunk_size or self.chunk_size
        )

    def upload(
        self,
        data: bytes,
        filename: str,
        content_type: str | None = None,
        metadata: dict[str, Any] | None = None,
        chunk_size: int | None = None,
    ) -> BlobRecord:
        """一次性写入字节内容，返回新记录

        metadata 中缺少 mimetype 时使用 content_type 补齐。
        """
        metadata = dict(metadata or {})
        if content_type and MetadataKeys.MIMETYPE not in metadata:
            metadata[MetadataKeys.MIMETYPE] = content_type
        with self.open_write_stream(
            filename, content_type, metadata, chunk_size
        ) as writer:
            writer.write(data)
        return writer.close()

    def delete_by_id(self, blob_id: str) -> bool:
        if self._load_record(blob_id) is None:
            raise BlobNotFoundError(blob_id)
        self._delete(blob_id)
        return True
