"""恢复检查点存储。

检查点保存在对象存储之外的恢复目录中，每个对象一对文件：
    <dir>/<id>.bin    原始字节
    <dir>/<id>.json   原始记录与哈希

两个文件都先写临时文件、刷盘，再原子替换。.json 最后写入，
它存在即表示检查点完整可用。
"""

from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import CheckpointNotFoundError, StorageIOError, handle_storage_errors
from ..models.blob_record import BlobRecord, RecoveryCheckpoint
from ..utils.hash_helpers import compute_md5
from ..utils.logging_helpers import get_logger
from .base import validate_blob_id
from .file import write_atomic


logger = get_logger()

_DATA_SUFFIX = ".bin"
_META_SUFFIX = ".json"


class CheckpointStore:
    """持久化的恢复检查点目录"""

    def __init__(self, directory: str | Path):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    def _data_path(self, blob_id: str) -> Path:
        return self._dir / f"{validate_blob_id(blob_id)}{_DATA_SUFFIX}"

    def _meta_path(self, blob_id: str) -> Path:
        return self._dir / f"{validate_blob_id(blob_id)}{_META_SUFFIX}"

    @handle_storage_errors("检查点写入")
    def save(self, record: BlobRecord, data: bytes) -> RecoveryCheckpoint:
        """保存原始字节与记录，返回后即已落盘

        同 id 已有的检查点会被覆盖。
        """
        checkpoint = RecoveryCheckpoint(
            blob_id=record.id,
            record=record,
            old_md5=compute_md5(data),
            byte_size=len(data),
        )
        write_atomic(self._data_path(record.id), data)
        write_atomic(
            self._meta_path(record.id),
            checkpoint.model_dump_json(indent=2).encode("utf-8"),
        )
        logger.debug(f"检查点已保存: {record.id} ({len(data)} 字节)")
        return checkpoint

    @handle_storage_errors("检查点读取")
    def load(self, blob_id: str) -> tuple[RecoveryCheckpoint, bytes]:
        """读取检查点，并校验原始字节的哈希"""
        meta_path = self._meta_path(blob_id)
        if not meta_path.exists():
            raise CheckpointNotFoundError(blob_id)

        try:
            checkpoint = RecoveryCheckpoint.model_validate_json(meta_path.read_bytes())
        except PydanticValidationError as e:
            raise StorageIOError(f"检查点记录损坏: {e}", blob_id) from e

        data_path = self._data_path(blob_id)
        if not data_path.exists():
            raise StorageIOError("检查点缺少原始内容文件", blob_id)
        data = data_path.read_bytes()

        if compute_md5(data) != checkpoint.old_md5:
            raise StorageIOError("检查点原始内容哈希不匹配", blob_id)

        return checkpoint, data

    def exists(self, blob_id: str) -> bool:
        return self._meta_path(blob_id).exists()

    @handle_storage_errors("检查点删除")
    def delete(self, blob_id: str) -> bool:
        """删除检查点，不存在时返回 False"""
        meta_path = self._meta_path(blob_id)
        existed = meta_path.exists()
        # 先删记录文件，使检查点立即失效
        meta_path.unlink(missing_ok=True)
        self._data_path(blob_id).unlink(missing_ok=True)
        return existed

    @handle_storage_errors("检查点枚举")
    def list_ids(self) -> list[str]:
        """所有检查点的 id（按 id 排序）"""
        return sorted(
            path.name[: -len(_META_SUFFIX)]
            for path in self._dir.glob(f"*{_META_SUFFIX}")
            if not path.name.startswith(".")
        )
