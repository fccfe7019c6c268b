"""对象替换编排模块。

按固定顺序执行 读取 → 缓冲 → 检查点 → 转换 → 删除 → 哈希 → 重新写入 → 清理，
在保持对象 id 不变的前提下替换内容。删除之后的失败不会自动回滚，
原始内容保留在检查点中，通过 restore_from_checkpoint 显式恢复。
"""

import logging
from typing import Any

from ..core.compression_engine import CompressionEngine
from ..exceptions import (
    CheckpointNotFoundError,
    ErrorHandler,
    PartialFailureError,
    RestoreConflictError,
    StorageIOError,
)
from ..models.blob_record import BlobRecord, RecoveryCheckpoint
from ..models.compression_result import ReplacementResult, ReplacementState
from ..models.constants import MetadataKeys
from ..storage.base import BlobStore
from ..storage.checkpoint import CheckpointStore
from ..utils.chunk_helpers import split_into_chunks
from ..utils.hash_helpers import compute_md5
from ..utils.logging_helpers import get_logger
from ..utils.message_formatter import MessageFormatter


class ReplacementOrchestrator:
    """单对象替换状态机

    同一实例一次只处理一个对象，不做任何并发控制。
    """

    def __init__(
        self,
        store: BlobStore,
        engine: CompressionEngine,
        checkpoints: CheckpointStore,
        logger: logging.Logger | None = None,
    ):
        """初始化编排器

        Args:
            store: 对象存储
            engine: 压缩引擎
            checkpoints: 恢复检查点存储
            logger: 注入的日志记录器
        """
        self.store = store
        self.engine = engine
        self.checkpoints = checkpoints
        self.logger = logger or get_logger()
        self.state: ReplacementState | None = None

    def _set_state(self, state: ReplacementState, blob_id: str) -> None:
        self.state = state
        self.logger.debug(f"[{blob_id}] → {state.value}")

    # ------------------------------------------------------------------
    # 公共操作
    # ------------------------------------------------------------------

    def compress_by_id(self, blob_id: str) -> ReplacementResult:
        """压缩单个对象并以同一 id 写回

        Raises:
            NotFoundError: 对象不存在，未做任何修改
            DecodeError: 已识别格式无法解码，检查点已丢弃
            PartialFailureError: 删除之后失败，检查点保留
        """
        self.logger.info(f"开始压缩对象: {blob_id}")
        record, data, saved = self._fetch_and_checkpoint(blob_id)
        try:
            self._set_state(ReplacementState.TRANSFORMING, blob_id)
            decision = self.engine.compress(data)
        except Exception:
            self._fail_before_delete(blob_id, saved)
            raise

        metadata = dict(record.metadata)
        metadata[MetadataKeys.IS_COMPRESSED] = True
        metadata[MetadataKeys.OLD_MD5] = saved.old_md5

        new_record = self._swap(record, decision.data, metadata, delete_first=True)

        result = ReplacementResult(
            blob_id=blob_id,
            state=self.state,
            original_size=len(data),
            new_size=new_record.length,
            is_compressed=decision.is_compressed,
            is_resized=decision.is_resized,
            old_md5=saved.old_md5,
            md5=new_record.md5,
        )
        self.logger.info(f"压缩完成 {result.get_summary()}")
        return result

    def replace_content(self, blob_id: str, new_bytes: bytes) -> ReplacementResult:
        """用调用方提供的内容替换对象，不经过压缩引擎

        新内容未经重新编码，因此写回时去掉 isCompressed 标记。
        """
        self.logger.info(f"开始替换对象内容: {blob_id}")
        record, data, saved = self._fetch_and_checkpoint(blob_id)

        metadata = dict(record.metadata)
        metadata.pop(MetadataKeys.IS_COMPRESSED, None)
        metadata[MetadataKeys.OLD_MD5] = saved.old_md5

        new_record = self._swap(record, new_bytes, metadata, delete_first=True)

        result = ReplacementResult(
            blob_id=blob_id,
            state=self.state,
            original_size=len(data),
            new_size=new_record.length,
            old_md5=saved.old_md5,
            md5=new_record.md5,
        )
        self.logger.info(f"替换完成 {result.get_summary()}")
        return result

    def restore_from_checkpoint(self, blob_id: str) -> ReplacementResult:
        """用检查点中的原始内容重新写入对象

        只在该 id 下没有存活对象时执行。恢复后的记录保留原始 metadata
        （包括 isCompressed 的原值），md5 为原始内容哈希。

        如果进程在重新写入完成之后、清理检查点之前中断，对象已经是新内容，
        此时恢复会抛出 RestoreConflictError 而不会覆盖；确认对象完好后
        用 discard_checkpoint 丢弃检查点，或先删除对象再恢复。

        Raises:
            CheckpointNotFoundError: 没有该 id 的检查点
            RestoreConflictError: 该 id 下仍存在对象
        """
        self.logger.info(f"开始从检查点恢复: {blob_id}")
        self._set_state(ReplacementState.FETCHING, blob_id)
        checkpoint, data = self.checkpoints.load(blob_id)

        if self.store.exists(blob_id):
            self.state = ReplacementState.FAILED_BEFORE_CHECKPOINT
            raise RestoreConflictError(
                f"对象 {blob_id} 仍然存在，拒绝覆盖；"
                "过期的检查点请用 discard_checkpoint 丢弃",
                blob_id,
            )

        metadata = dict(checkpoint.record.metadata)
        metadata[MetadataKeys.OLD_MD5] = checkpoint.old_md5

        new_record = self._swap(checkpoint.record, data, metadata, delete_first=False)

        result = ReplacementResult(
            blob_id=blob_id,
            state=self.state,
            original_size=checkpoint.byte_size,
            new_size=new_record.length,
            is_compressed=checkpoint.record.is_compressed,
            old_md5=checkpoint.old_md5,
            md5=new_record.md5,
        )
        self.logger.info(
            f"恢复完成: {blob_id} ({result.format_size(result.new_size)})"
        )
        return result

    def has_checkpoint(self, blob_id: str) -> bool:
        """是否存在未清理的检查点"""
        return self.checkpoints.exists(blob_id)

    def list_checkpoints(self) -> list[str]:
        """所有未清理检查点的对象 id"""
        return self.checkpoints.list_ids()

    def discard_checkpoint(self, blob_id: str) -> None:
        """丢弃检查点（运维操作，不检查对象状态）"""
        if not self.checkpoints.delete(blob_id):
            raise CheckpointNotFoundError(blob_id)
        self.logger.info(f"已丢弃检查点: {blob_id}")

    # ------------------------------------------------------------------
    # 内部步骤
    # ------------------------------------------------------------------

    def _fetch_and_checkpoint(
        self, blob_id: str
    ) -> tuple[BlobRecord, bytes, RecoveryCheckpoint]:
        """步骤 1-3：读取、缓冲、保存检查点"""
        saved: RecoveryCheckpoint | None = None
        try:
            self._set_state(ReplacementState.FETCHING, blob_id)
            record, stream = self.store.open_read_stream(blob_id)

            self._set_state(ReplacementState.BUFFERING, blob_id)
            buffer = bytearray()
            for chunk in stream:
                buffer.extend(chunk)
            data = bytes(buffer)

            self._set_state(ReplacementState.CHECKPOINTING, blob_id)
            saved = self.checkpoints.save(record, data)
        except Exception:
            self._fail_before_delete(blob_id, saved)
            raise
        return record, data, saved

    def _fail_before_delete(
        self, blob_id: str, saved: RecoveryCheckpoint | None
    ) -> None:
        """删除之前失败：存储未被修改，丢弃本次写入的检查点"""
        self.state = ReplacementState.FAILED_BEFORE_CHECKPOINT
        if saved is None:
            return
        try:
            self.checkpoints.delete(blob_id)
        except StorageIOError as e:
            ErrorHandler.log_error("检查点清理", blob_id, e, "warning", self.logger)

    def _swap(
        self,
        record: BlobRecord,
        data: bytes,
        metadata: dict[str, Any],
        delete_first: bool,
    ) -> BlobRecord:
        """步骤 5-8：删除、哈希、以同一 id 写回、清理检查点"""
        blob_id = record.id
        try:
            if delete_first:
                self._set_state(ReplacementState.DELETING, blob_id)
                self.store.delete_by_id(blob_id)

            self._set_state(ReplacementState.HASHING, blob_id)
            metadata[MetadataKeys.MD5] = compute_md5(data)

            self._set_state(ReplacementState.REINSERTING, blob_id)
            with self.store.open_write_stream_with_id(
                blob_id,
                record.filename,
                content_type=record.content_type,
                metadata=metadata,
                chunk_size=record.chunk_size,
            ) as writer:
                for chunk in split_into_chunks(data, record.chunk_size):
                    writer.write(chunk)
            new_record = writer.record
        except Exception as e:
            self.state = ReplacementState.FAILED_AFTER_DELETE
            message = MessageFormatter.operation_failed("重新写入", blob_id, e)
            self.logger.critical(f"{message}，原始内容保留在检查点中")
            raise PartialFailureError(message, blob_id) from e

        self._set_state(ReplacementState.CLEANING_UP, blob_id)
        try:
            self.checkpoints.delete(blob_id)
        except StorageIOError as e:
            # 对象已完整写回，遗留的检查点可用 discard_checkpoint 清理
            ErrorHandler.log_error("检查点清理", blob_id, e, "warning", self.logger)

        self._set_state(ReplacementState.DONE, blob_id)
        return new_record
