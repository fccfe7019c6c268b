"""对象压缩服务接口。

把对象存储、压缩引擎、替换编排器和批量处理器组装在一起，
提供列表、统计、下载、压缩、恢复和内容替换的统一入口。
"""

import logging
from collections.abc import Iterator
from typing import Any
from urllib.parse import quote

from .config import AppConfig, get_config
from .core.compression_engine import CompressionEngine
from .engine.batch import BatchRunner
from .engine.config import ConfigBuilder
from .engine.replacement import ReplacementOrchestrator
from .exceptions import ValidationError
from .models import (
    BatchProgress,
    BlobFilter,
    BlobRecord,
    EngineSettings,
    MetadataKeys,
    ReplacementResult,
    SortOrder,
)
from .storage import BlobStore, CheckpointStore, FileBlobStore
from .utils.logging_helpers import get_logger
from .utils.message_formatter import format_validation_error


logger = get_logger()

_MAX_PAGE_SIZE = 1000


def record_to_dict(record: BlobRecord) -> dict[str, Any]:
    """对象记录转为可序列化的字典"""
    data = record.model_dump(mode="json")
    data["length_human"] = record.get_length_human()
    return data


def build_download_headers(record: BlobRecord) -> dict[str, str]:
    """下载响应头"""
    return {
        "Content-Type": record.effective_mime_type(),
        "Content-Length": str(record.length),
        "Content-Disposition": f'attachment; filename="{quote(record.filename)}"',
        "Accept-Ranges": "bytes",
    }


class BlobCompressor:
    """对象压缩服务

    所有单对象操作在失败时直接抛出异常，由调用方决定如何呈现。
    """

    def __init__(
        self,
        store: BlobStore,
        checkpoints: CheckpointStore,
        settings: EngineSettings | None = None,
        logger: logging.Logger | None = None,
        app_config: AppConfig | None = None,
    ):
        """初始化压缩服务

        Args:
            store: 对象存储
            checkpoints: 恢复检查点存储
            settings: 压缩引擎配置，默认按应用配置构建
            logger: 注入的日志记录器
            app_config: 应用配置，默认使用全局配置
        """
        self.app_config = app_config or get_config()
        self.logger = logger or get_logger()
        self.store = store
        self.checkpoints = checkpoints

        settings = settings or ConfigBuilder(self.app_config).build()
        self.engine = CompressionEngine(settings, self.logger)
        self.orchestrator = ReplacementOrchestrator(
            store, self.engine, checkpoints, self.logger
        )
        self.batch_runner = BatchRunner(
            self.orchestrator,
            self.logger,
            self.app_config.processing.PROGRESS_REPORT_INTERVAL,
        )

        self.logger.debug("初始化对象压缩服务")

    @classmethod
    def from_config(cls, app_config: AppConfig | None = None) -> "BlobCompressor":
        """按应用配置创建基于文件系统存储的服务"""
        app_config = app_config or get_config()
        builder = ConfigBuilder(app_config)
        store = FileBlobStore(
            app_config.storage.STORE_ROOT, chunk_size=builder.chunk_size()
        )
        checkpoints = CheckpointStore(app_config.storage.RECOVERY_DIR)
        logger.info(
            f"对象存储: {store.root}，恢复目录: {checkpoints.directory}"
        )
        return cls(store, checkpoints, builder.build(), app_config=app_config)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def list_blobs(
        self,
        page: int = 1,
        per_page: int | None = None,
        mimetype: str | None = None,
    ) -> dict[str, Any]:
        """分页列出对象（按 id 倒序）"""
        per_page = per_page or self.app_config.processing.PAGE_SIZE
        if page < 1:
            raise ValidationError(format_validation_error("page", page, ">= 1"))
        if not 1 <= per_page <= _MAX_PAGE_SIZE:
            raise ValidationError(
                format_validation_error("per_page", per_page, f"1-{_MAX_PAGE_SIZE}")
            )

        blob_filter = BlobFilter(mimetype=mimetype) if mimetype else None
        records = self.store.find(
            blob_filter,
            skip=(page - 1) * per_page,
            limit=per_page,
            sort=SortOrder.DESCENDING,
        )
        return {
            "page": page,
            "per_page": per_page,
            "total": self.store.count(blob_filter),
            "items": [record_to_dict(record) for record in records],
        }

    def get_file_types(self) -> list[str]:
        """所有出现过的 MIME 类型"""
        return sorted(self.store.distinct_mime_types())

    def get_total_size(self, mimetype: str | None = None) -> dict[str, Any]:
        """总数量与总大小，以及按类型的明细"""
        blob_filter = BlobFilter(mimetype=mimetype) if mimetype else None
        stats = self.store.aggregate_size_by_type(blob_filter)

        count = sum(entry.count for entry in stats.values())
        total_size = sum(entry.total_size for entry in stats.values())
        return {
            "count": count,
            "total_size": total_size,
            "total_size_human": ReplacementResult.format_size(total_size),
            "by_type": {
                key: {
                    "count": entry.count,
                    "total_size": entry.total_size,
                    "total_size_human": entry.get_total_size_human(),
                }
                for key, entry in sorted(stats.items())
            },
        }

    def get_blob(self, blob_id: str) -> BlobRecord:
        return self.store.find_by_id(blob_id)

    def download(
        self, blob_id: str
    ) -> tuple[BlobRecord, dict[str, str], Iterator[bytes]]:
        """打开下载流，返回记录、响应头和字节块迭代器"""
        record, stream = self.store.open_read_stream(blob_id)
        return record, build_download_headers(record), stream

    # ------------------------------------------------------------------
    # 写入与替换
    # ------------------------------------------------------------------

    def upload(
        self,
        data: bytes,
        filename: str,
        mimetype: str | None = None,
        container: str | None = None,
    ) -> BlobRecord:
        """写入新对象"""
        metadata: dict[str, Any] = {}
        if mimetype:
            metadata[MetadataKeys.MIMETYPE] = mimetype
        if container:
            metadata[MetadataKeys.CONTAINER] = container
        return self.store.upload(
            data, filename, content_type=mimetype, metadata=metadata
        )

    def compress_blob(self, blob_id: str) -> ReplacementResult:
        return self.orchestrator.compress_by_id(blob_id)

    def compress_all_by_type(
        self, mimetype: str, sort: SortOrder | None = None
    ) -> BatchProgress:
        if sort is None:
            sort = (
                SortOrder.DESCENDING
                if self.app_config.processing.SORT_DESCENDING
                else SortOrder.ASCENDING
            )
        return self.batch_runner.compress_all_by_type(mimetype, sort)

    def replace_blob(self, blob_id: str, content: bytes) -> ReplacementResult:
        return self.orchestrator.replace_content(blob_id, content)

    def restore_blob(self, blob_id: str) -> ReplacementResult:
        return self.orchestrator.restore_from_checkpoint(blob_id)

    # ------------------------------------------------------------------
    # 检查点运维
    # ------------------------------------------------------------------

    def has_checkpoint(self, blob_id: str) -> bool:
        return self.orchestrator.has_checkpoint(blob_id)

    def list_checkpoints(self) -> list[str]:
        return self.orchestrator.list_checkpoints()

    def discard_checkpoint(self, blob_id: str) -> None:
        self.orchestrator.discard_checkpoint(blob_id)
