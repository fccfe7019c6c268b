"""批量处理测试。"""

import logging

import pytest
from conftest import make_jpeg

from py_blob_compress_mcp.engine.batch import BatchRunner
from py_blob_compress_mcp.engine.replacement import ReplacementOrchestrator
from py_blob_compress_mcp.exceptions import (
    BlobNotFoundError,
    DecodeError,
    ErrorHandler,
    PartialFailureError,
)
from py_blob_compress_mcp.models import ReplacementResult, SortOrder


class RecordingOrchestrator(ReplacementOrchestrator):
    """记录调用顺序，并在指定 id 上注入失败"""

    def __init__(self, *args, fail_ids=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_ids = set(fail_ids)
        self.attempted: list[str] = []

    def compress_by_id(self, blob_id):
        self.attempted.append(blob_id)
        if blob_id in self.fail_ids:
            raise DecodeError("注入的解码失败", blob_id)
        return super().compress_by_id(blob_id)


class GrowingOrchestrator(ReplacementOrchestrator):
    """每个对象的输出都比原始内容大 1000 字节"""

    def compress_by_id(self, blob_id):
        record = self.store.find_by_id(blob_id)
        return ReplacementResult(
            blob_id=blob_id,
            original_size=record.length,
            new_size=record.length + 1000,
            is_compressed=True,
            md5="0" * 32,
        )


def _seed_jpegs(store, ids, width=200, height=1000):
    for blob_id in ids:
        with store.open_write_stream_with_id(
            blob_id,
            f"{blob_id}.jpg",
            content_type="image/jpeg",
            metadata={"mimetype": "image/jpeg"},
        ) as writer:
            writer.write(make_jpeg(width, height))


@pytest.fixture
def runner(orchestrator: ReplacementOrchestrator) -> BatchRunner:
    return BatchRunner(orchestrator)


class TestBatchRunner:
    """批量压缩测试"""

    def test_compresses_only_matching_uncompressed(
        self, runner: BatchRunner, tall_jpeg: bytes, small_png: bytes
    ):
        """测试只处理指定类型中没有压缩标记的对象"""
        store = runner.store
        jpeg_ids = [
            store.upload(tall_jpeg, f"{i}.jpg", content_type="image/jpeg").id
            for i in range(3)
        ]
        png = store.upload(small_png, "a.png", content_type="image/png")

        progress = runner.compress_all_by_type("image/jpeg")

        assert progress.items_processed == 3
        assert progress.items_failed == 0
        assert progress.mimetype == "image/jpeg"
        assert progress.bytes_freed > 0
        assert progress.elapsed_seconds >= 0
        assert all(store.find_by_id(i).is_compressed for i in jpeg_ids)
        assert not store.find_by_id(png.id).is_compressed

        again = runner.compress_all_by_type("image/jpeg")
        assert again.items_processed == 0
        assert again.get_total_count() == 0

    def test_bytes_freed_is_sum_of_reductions(self, runner: BatchRunner):
        store = runner.store
        _seed_jpegs(store, ["e1", "e2"], width=300, height=2500)
        before = sum(store.find_by_id(i).length for i in ["e1", "e2"])

        progress = runner.compress_all_by_type("image/jpeg")

        after = sum(store.find_by_id(i).length for i in ["e1", "e2"])
        assert progress.bytes_freed == before - after

    def test_bytes_freed_can_be_negative(self, memory_store, engine, checkpoints):
        """测试输出变大时 bytes_freed 为负数，不截断为 0"""
        _seed_jpegs(memory_store, ["n1", "n2"])
        runner = BatchRunner(GrowingOrchestrator(memory_store, engine, checkpoints))

        progress = runner.compress_all_by_type("image/jpeg")

        assert progress.items_processed == 2
        assert progress.bytes_freed == -2000
        assert "释放 -" in progress.get_summary()

    def test_failure_on_one_item_does_not_stop_batch(
        self, memory_store, engine, checkpoints
    ):
        """测试第 k 个对象失败时仍继续处理 k+1..n"""
        ids = ["f1", "f2", "f3", "f4", "f5"]
        _seed_jpegs(memory_store, ids)
        orchestrator = RecordingOrchestrator(
            memory_store, engine, checkpoints, fail_ids={"f3"}
        )
        runner = BatchRunner(orchestrator)

        progress = runner.compress_all_by_type("image/jpeg", SortOrder.ASCENDING)

        assert orchestrator.attempted == ids
        assert progress.items_processed == 4
        assert progress.items_failed == 1
        assert progress.failed_ids == ["f3"]
        assert progress.get_success_rate() == pytest.approx(80.0)
        assert not memory_store.find_by_id("f3").is_compressed
        assert memory_store.find_by_id("f5").is_compressed

    def test_real_decode_failure_is_isolated(
        self, runner: BatchRunner, truncated_jpeg: bytes, tall_jpeg: bytes
    ):
        store = runner.store
        broken = store.upload(truncated_jpeg, "broken.jpg", content_type="image/jpeg")
        good = store.upload(tall_jpeg, "good.jpg", content_type="image/jpeg")

        progress = runner.compress_all_by_type("image/jpeg")

        assert progress.failed_ids == [broken.id]
        assert store.find_by_id(good.id).is_compressed
        assert store.read_all(broken.id) == truncated_jpeg

    @pytest.mark.parametrize(
        ("sort", "expected"),
        [
            (SortOrder.DESCENDING, ["g3", "g2", "g1"]),
            (SortOrder.ASCENDING, ["g1", "g2", "g3"]),
        ],
    )
    def test_processing_order(self, memory_store, engine, checkpoints, sort, expected):
        """测试默认新对象优先，也可以按升序处理"""
        _seed_jpegs(memory_store, ["g1", "g2", "g3"])
        orchestrator = RecordingOrchestrator(memory_store, engine, checkpoints)

        BatchRunner(orchestrator).compress_all_by_type("image/jpeg", sort)

        assert orchestrator.attempted == expected

    def test_progress_logged_at_interval(
        self, memory_store, engine, checkpoints, caplog
    ):
        """测试每处理 N 个对象输出一次进度"""
        _seed_jpegs(memory_store, ["h1", "h2", "h3", "h4", "h5"])
        logger = logging.getLogger("tests.batch")
        orchestrator = ReplacementOrchestrator(
            memory_store, engine, checkpoints, logger
        )
        runner = BatchRunner(orchestrator, logger, progress_report_interval=2)

        with caplog.at_level(logging.INFO, logger="tests.batch"):
            runner.compress_all_by_type("image/jpeg")

        progress_lines = [r for r in caplog.records if "已处理" in r.getMessage()]
        assert len(progress_lines) == 2

    def test_empty_type(self, runner: BatchRunner):
        progress = runner.compress_all_by_type("image/does-not-exist")

        assert progress.items_processed == 0
        assert progress.bytes_freed == 0
        assert "image/does-not-exist" in progress.get_summary()


class TestErrorHandler:
    """单对象失败的日志级别测试"""

    @pytest.mark.parametrize(
        ("error", "level"),
        [
            (PartialFailureError("重新写入失败", "x"), "critical"),
            (BlobNotFoundError("x"), "warning"),
            (DecodeError("损坏", "x"), "warning"),
            (RuntimeError("意外错误"), "error"),
        ],
    )
    def test_level_for(self, error, level):
        assert ErrorHandler.level_for(error) == level

    def test_handle_item_failure_returns_description(self, caplog):
        logger = logging.getLogger("tests.errors")

        with caplog.at_level(logging.WARNING, logger="tests.errors"):
            message = ErrorHandler.handle_item_failure(
                DecodeError("损坏"), "abc", log=logger
            )

        assert "损坏" in message
        assert any("abc" in r.getMessage() for r in caplog.records)
