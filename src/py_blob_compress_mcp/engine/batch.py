"""批量处理器模块。

按 MIME 类型顺序压缩所有未压缩过的对象，单个对象失败不影响后续处理。
"""

import logging
import time

from ..config import get_config
from ..exceptions import ErrorHandler
from ..models.blob_record import BlobFilter, SortOrder
from ..models.compression_result import BatchProgress
from ..utils.logging_helpers import get_logger
from ..utils.message_formatter import MessageFormatter
from .replacement import ReplacementOrchestrator


class BatchRunner:
    """批量压缩执行器

    严格顺序执行：候选对象通过惰性游标逐个取出，不预先物化。
    """

    def __init__(
        self,
        orchestrator: ReplacementOrchestrator,
        logger: logging.Logger | None = None,
        progress_report_interval: int | None = None,
    ):
        """初始化批量处理器

        Args:
            orchestrator: 单对象替换编排器
            logger: 注入的日志记录器
            progress_report_interval: 每处理多少个对象输出一次进度
        """
        self.orchestrator = orchestrator
        self.logger = logger or get_logger()
        self.progress_report_interval = (
            progress_report_interval
            or get_config().processing.PROGRESS_REPORT_INTERVAL
        )

    @property
    def store(self):
        return self.orchestrator.store

    def compress_all_by_type(
        self, mimetype: str, sort: SortOrder = SortOrder.DESCENDING
    ) -> BatchProgress:
        """压缩指定类型下所有没有 isCompressed 标记的对象

        Args:
            mimetype: metadata.mimetype
            sort: 按 id 的处理顺序，默认新对象优先

        Returns:
            BatchProgress: 本次运行的计数
        """
        progress = BatchProgress(mimetype=mimetype)
        candidates = BlobFilter(mimetype=mimetype, uncompressed_only=True)
        start_time = time.perf_counter()

        self.logger.info(f"开始批量压缩: {mimetype}")

        for record in self.store.open_cursor(candidates, sort):
            original_length = record.length
            try:
                result = self.orchestrator.compress_by_id(record.id)
            except Exception as e:
                ErrorHandler.handle_item_failure(e, record.id, log=self.logger)
                progress.items_failed += 1
                progress.failed_ids.append(record.id)
            else:
                progress.items_processed += 1
                progress.bytes_freed += original_length - result.new_size

            attempted = progress.get_total_count()
            if attempted % self.progress_report_interval == 0:
                self.logger.info(
                    MessageFormatter.batch_progress(
                        mimetype,
                        progress.items_processed,
                        progress.items_failed,
                        progress.bytes_freed,
                    )
                )

        progress.elapsed_seconds = time.perf_counter() - start_time
        self.logger.info(f"批量压缩完成 {progress.get_summary()}")
        return progress
