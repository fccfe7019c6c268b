"""内存对象存储。

进程内的 BlobStore 实现，用于测试和临时场景。
"""

import threading
from collections.abc import Iterator
from typing import Any

from ..models.blob_record import BlobRecord, SortOrder
from ..models.constants import StorageDefaults
from .base import BaseBlobStore, BlobWriter


class _MemoryBlobWriter(BlobWriter):
    def __init__(self, store: "MemoryBlobStore", *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._store = store
        self._chunks: list[bytes] = []

    def _write_chunk(self, index: int, chunk: bytes) -> None:
        self._chunks.append(chunk)

    def _commit(self, record: BlobRecord) -> None:
        self._store._put(record, self._chunks)

    def _discard(self) -> None:
        self._chunks = []


class MemoryBlobStore(BaseBlobStore):
    """基于字典的对象存储

    记录与分块保存在内存中，进程结束即丢失。
    """

    def __init__(self, chunk_size: int = StorageDefaults.CHUNK_SIZE):
        super().__init__(chunk_size)
        self._lock = threading.Lock()
        self._objects: dict[str, tuple[BlobRecord, tuple[bytes, ...]]] = {}

    def __len__(self) -> int:
        return len(self._objects)

    def _put(self, record: BlobRecord, chunks: list[bytes]) -> None:
        with self._lock:
            self._objects[record.id] = (record, tuple(chunks))

    def _iter_ids(self, sort: SortOrder | None) -> Iterator[str]:
        with self._lock:
            ids = sorted(self._objects)
        if sort == SortOrder.DESCENDING:
            ids.reverse()
        return iter(ids)

    def _load_record(self, blob_id: str) -> BlobRecord | None:
        with self._lock:
            entry = self._objects.get(blob_id)
        if entry is None:
            return None
        return entry[0].model_copy(deep=True)

    def _iter_chunks(self, record: BlobRecord) -> Iterator[bytes]:
        with self._lock:
            entry = self._objects.get(record.id)
        chunks = entry[1] if entry is not None else ()
        yield from chunks

    def _new_writer(
        self,
        blob_id: str | None,
        filename: str,
        content_type: str | None,
        metadata: dict[str, Any] | None,
        chunk_size: int,
    ) -> BlobWriter:
        return _MemoryBlobWriter(
            self, blob_id, filename, content_type, metadata, chunk_size
        )

    def _delete(self, blob_id: str) -> None:
        with self._lock:
            self._objects.pop(blob_id, None)
