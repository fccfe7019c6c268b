"""文件系统对象存储。

目录布局：
    <root>/files/<id>.json           对象记录
    <root>/chunks/<id>/<n>.chunk     第 n 个分块

记录文件存在即对象存在。写入时分块先落到临时目录，提交时整体改名，
最后原子地写入记录文件；删除时先删记录再删分块。
"""

import os
import shutil
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import StorageIOError, handle_storage_errors
from ..models.blob_record import BlobRecord, SortOrder
from ..models.constants import StorageDefaults
from ..utils.logging_helpers import get_logger
from .base import BaseBlobStore, BlobWriter, validate_blob_id


logger = get_logger()

_RECORD_SUFFIX = ".json"
_CHUNK_SUFFIX = ".chunk"
_PARTIAL_PREFIX = ".partial-"


def write_atomic(path: Path, data: bytes) -> None:
    """先写临时文件并刷盘，再原子替换目标文件"""
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def _chunk_name(index: int) -> str:
    return f"{index:06d}{_CHUNK_SUFFIX}"


class _FileBlobWriter(BlobWriter):
    def __init__(self, store: "FileBlobStore", *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._store = store
        self._partial_dir = store.chunks_dir / f"{_PARTIAL_PREFIX}{uuid.uuid4().hex}"
        self._partial_dir.mkdir(parents=True)

    @handle_storage_errors("分块写入")
    def _write_chunk(self, index: int, chunk: bytes) -> None:
        (self._partial_dir / _chunk_name(index)).write_bytes(chunk)

    @handle_storage_errors("对象提交")
    def _commit(self, record: BlobRecord) -> None:
        target_dir = self._store._chunk_dir(record.id)
        # 同 id 的残留分块（例如崩溃遗留）直接覆盖
        if target_dir.exists():
            shutil.rmtree(target_dir)
        os.replace(self._partial_dir, target_dir)
        write_atomic(
            self._store._record_path(record.id),
            record.model_dump_json().encode("utf-8"),
        )

    def _discard(self) -> None:
        shutil.rmtree(self._partial_dir, ignore_errors=True)


class FileBlobStore(BaseBlobStore):
    """文件系统对象存储"""

    def __init__(
        self, root: str | Path, chunk_size: int = StorageDefaults.CHUNK_SIZE
    ) -> None:
        """初始化存储目录，不存在时自动创建"""
        super().__init__(chunk_size)
        self._root = Path(root)
        self.files_dir.mkdir(parents=True, exist_ok=True)
        self.chunks_dir.mkdir(parents=True, exist_ok=True)
        self._cleanup_partials()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def files_dir(self) -> Path:
        return self._root / "files"

    @property
    def chunks_dir(self) -> Path:
        return self._root / "chunks"

    def _record_path(self, blob_id: str) -> Path:
        return self.files_dir / f"{validate_blob_id(blob_id)}{_RECORD_SUFFIX}"

    def _chunk_dir(self, blob_id: str) -> Path:
        return self.chunks_dir / validate_blob_id(blob_id)

    def _cleanup_partials(self) -> None:
        """清理上次进程遗留的未提交分块"""
        for partial in self.chunks_dir.glob(f"{_PARTIAL_PREFIX}*"):
            logger.info(f"清理未提交的分块目录: {partial.name}")
            shutil.rmtree(partial, ignore_errors=True)

    @handle_storage_errors("对象枚举")
    def _iter_ids(self, sort: SortOrder | None) -> Iterator[str]:
        """列出并排序当前所有记录 id 的快照，记录本身由游标逐个加载"""
        ids = sorted(
            path.name[: -len(_RECORD_SUFFIX)]
            for path in self.files_dir.glob(f"*{_RECORD_SUFFIX}")
            if not path.name.startswith(".")
        )
        if sort == SortOrder.DESCENDING:
            ids.reverse()
        return iter(ids)

    @handle_storage_errors("记录读取")
    def _load_record(self, blob_id: str) -> BlobRecord | None:
        path = self._record_path(blob_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None

        try:
            return BlobRecord.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(
                f"记录文件损坏，忽略: {path.name} ({e.error_count()} 个错误)"
            )
            return None

    def _iter_chunks(self, record: BlobRecord) -> Iterator[bytes]:
        chunk_dir = self._chunk_dir(record.id)
        for index in range(record.chunk_count):
            path = chunk_dir / _chunk_name(index)
            try:
                yield path.read_bytes()
            except OSError as e:
                raise StorageIOError(
                    f"读取分块 {index} 失败: {e}", record.id
                ) from e

    @handle_storage_errors("打开写入流")
    def _new_writer(
        self,
        blob_id: str | None,
        filename: str,
        content_type: str | None,
        metadata: dict[str, Any] | None,
        chunk_size: int,
    ) -> BlobWriter:
        return _FileBlobWriter(
            self, blob_id, filename, content_type, metadata, chunk_size
        )

    @handle_storage_errors("对象删除")
    def _delete(self, blob_id: str) -> None:
        self._record_path(blob_id).unlink(missing_ok=True)
        shutil.rmtree(self._chunk_dir(blob_id), ignore_errors=True)

