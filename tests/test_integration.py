"""集成测试。

测试压缩服务接口、MCP 工具和配置的端到端行为。
"""

import base64
import hashlib

import pytest
from conftest import TEST_MAX_HEIGHT, TEST_MIN_SIZE_BYTES, TEST_QUALITY

from py_blob_compress_mcp import mcp_server
from py_blob_compress_mcp.compressor import BlobCompressor, build_download_headers
from py_blob_compress_mcp.config import AppConfig
from py_blob_compress_mcp.engine.config import ConfigBuilder
from py_blob_compress_mcp.exceptions import (
    BlobNotFoundError,
    PartialFailureError,
    StorageIOError,
    ValidationError,
)
from py_blob_compress_mcp.storage import CheckpointStore, FileBlobStore, MemoryBlobStore


def call_tool(tool, *args, **kwargs):
    """调用 MCP 工具背后的原始函数"""
    return getattr(tool, "fn", tool)(*args, **kwargs)


@pytest.fixture
def app_config(monkeypatch) -> AppConfig:
    for name in ("PBC_QUALITY", "PBC_MAX_HEIGHT", "PBC_MIN_SIZE_BYTES"):
        monkeypatch.delenv(name, raising=False)
    return AppConfig()


@pytest.fixture
def compressor(tmp_path, app_config: AppConfig) -> BlobCompressor:
    settings = ConfigBuilder(app_config).build(
        min_size_bytes=TEST_MIN_SIZE_BYTES,
        max_height=TEST_MAX_HEIGHT,
        quality=TEST_QUALITY,
    )
    return BlobCompressor(
        MemoryBlobStore(chunk_size=64 * 1024),
        CheckpointStore(tmp_path / "recovery"),
        settings,
        app_config=app_config,
    )


@pytest.fixture
def service(compressor: BlobCompressor):
    mcp_server.set_service(compressor)
    yield compressor
    mcp_server.set_service(None)


def _put(compressor: BlobCompressor, blob_id: str, data: bytes, mimetype=None):
    metadata = {"mimetype": mimetype} if mimetype else {}
    with compressor.store.open_write_stream_with_id(
        blob_id, f"{blob_id}.bin", content_type=mimetype, metadata=metadata
    ) as writer:
        writer.write(data)
    return writer.record


class TestBlobCompressor:
    """压缩服务接口测试"""

    def test_list_blobs_paging(self, compressor: BlobCompressor):
        """测试分页按 id 倒序"""
        for blob_id in ["p1", "p2", "p3", "p4", "p5"]:
            _put(compressor, blob_id, b"x", "image/png")

        first = compressor.list_blobs(page=1, per_page=2)
        last = compressor.list_blobs(page=3, per_page=2)

        assert first["total"] == 5
        assert [item["id"] for item in first["items"]] == ["p5", "p4"]
        assert [item["id"] for item in last["items"]] == ["p1"]
        assert first["items"][0]["length_human"] == "1 Byte"

    @pytest.mark.parametrize(("page", "per_page"), [(0, 10), (1, 0), (1, 1001)])
    def test_list_blobs_rejects_bad_paging(
        self, compressor: BlobCompressor, page, per_page
    ):
        with pytest.raises(ValidationError):
            compressor.list_blobs(page=page, per_page=per_page)

    def test_list_blobs_by_type(self, compressor: BlobCompressor):
        _put(compressor, "t1", b"1", "image/jpeg")
        _put(compressor, "t2", b"2", "image/png")

        result = compressor.list_blobs(mimetype="image/png")

        assert result["total"] == 1
        assert [item["id"] for item in result["items"]] == ["t2"]

    def test_file_types_and_total_size(self, compressor: BlobCompressor):
        """测试类型列表与总大小统计"""
        _put(compressor, "s1", b"a" * 100, "image/jpeg")
        _put(compressor, "s2", b"b" * 50, "image/jpeg")
        _put(compressor, "s3", b"c" * 10, "image/png")
        _put(compressor, "s4", b"d" * 5)

        totals = compressor.get_total_size()
        jpeg_only = compressor.get_total_size("image/jpeg")

        assert compressor.get_file_types() == ["image/jpeg", "image/png"]
        assert totals["count"] == 4
        assert totals["total_size"] == 165
        assert totals["by_type"]["image/jpeg"]["count"] == 2
        assert totals["by_type"]["application/octet-stream"]["total_size"] == 5
        assert jpeg_only["total_size"] == 150
        assert list(jpeg_only["by_type"]) == ["image/jpeg"]

    def test_download_headers(self, compressor: BlobCompressor):
        """测试下载响应头，文件名按 URL 编码"""
        record = compressor.upload(b"jpeg bytes", "my photo 照片.jpg", "image/jpeg")

        fetched, headers, stream = compressor.download(record.id)

        assert fetched.id == record.id
        assert b"".join(stream) == b"jpeg bytes"
        assert headers["Content-Type"] == "image/jpeg"
        assert headers["Content-Length"] == "10"
        assert headers["Accept-Ranges"] == "bytes"
        assert headers["Content-Disposition"] == (
            'attachment; filename="my%20photo%20%E7%85%A7%E7%89%87.jpg"'
        )

    def test_download_generic_mime_type(self, compressor: BlobCompressor):
        record = compressor.upload(b"raw", "data")

        assert build_download_headers(record)["Content-Type"] == (
            "application/octet-stream"
        )

    def test_download_missing(self, compressor: BlobCompressor):
        with pytest.raises(BlobNotFoundError):
            compressor.download("000000000000000000000000")

    def test_upload_records_container(self, compressor: BlobCompressor):
        record = compressor.upload(b"x", "x.png", "image/png", container="icons")

        assert record.metadata == {"mimetype": "image/png", "container": "icons"}
        assert record.content_type == "image/png"

    def test_compress_replace_and_batch(
        self, compressor: BlobCompressor, tall_jpeg: bytes, small_png: bytes
    ):
        """测试单个压缩、内容替换与批量压缩的组合"""
        first = compressor.upload(tall_jpeg, "a.jpg", "image/jpeg")
        second = compressor.upload(tall_jpeg, "b.jpg", "image/jpeg")

        single = compressor.compress_blob(first.id)
        progress = compressor.compress_all_by_type("image/jpeg")
        replaced = compressor.replace_blob(first.id, small_png)

        assert single.is_compressed
        assert progress.items_processed == 1
        assert compressor.get_blob(second.id).is_compressed
        assert replaced.new_size == len(small_png)
        assert not compressor.get_blob(first.id).is_compressed
        assert compressor.list_checkpoints() == []

    def test_restore_after_failed_reinsert(
        self, compressor: BlobCompressor, tall_jpeg: bytes, monkeypatch
    ):
        """测试删除后失败的对象可通过服务接口恢复"""
        record = compressor.upload(tall_jpeg, "a.jpg", "image/jpeg")
        store = compressor.store

        def broken_write(*args, **kwargs):
            raise StorageIOError("写入失败")

        with monkeypatch.context() as patch:
            patch.setattr(store, "open_write_stream_with_id", broken_write)
            with pytest.raises(PartialFailureError):
                compressor.compress_blob(record.id)

        assert compressor.has_checkpoint(record.id)
        assert compressor.list_checkpoints() == [record.id]

        compressor.restore_blob(record.id)

        assert store.read_all(record.id) == tall_jpeg
        assert not compressor.has_checkpoint(record.id)


class TestMCPTools:
    """MCP 工具测试"""

    def test_list_and_types(self, service: BlobCompressor, small_png: bytes):
        service.upload(small_png, "a.png", "image/png")

        listed = call_tool(mcp_server.list_blobs)
        by_type = call_tool(mcp_server.list_blobs_by_type, "image/png")
        types = call_tool(mcp_server.get_file_types)
        totals = call_tool(mcp_server.get_total_size)

        assert listed["success"] and listed["total"] == 1
        assert by_type["mimetype"] == "image/png"
        assert types == {"success": True, "file_types": ["image/png"]}
        assert totals["total_size"] == len(small_png)

    def test_download_blob(self, service: BlobCompressor):
        record = service.upload(b"\x00\x01binary", "b.bin")

        result = call_tool(mcp_server.download_blob, record.id)

        assert result["success"]
        assert base64.b64decode(result["content_base64"]) == b"\x00\x01binary"
        assert result["headers"]["Content-Length"] == "8"
        assert result["blob"]["id"] == record.id

    def test_not_found_is_error_response(self, service: BlobCompressor):
        """测试工具不抛异常，而是返回标准化错误"""
        result = call_tool(mcp_server.compress_blob, "000000000000000000000000")

        assert result["success"] is False
        assert result["error_type"] == "not_found"
        assert result["details"] == {"blob_id": "000000000000000000000000"}

    def test_replace_rejects_invalid_base64(self, service: BlobCompressor):
        record = service.upload(b"x", "x.bin")

        result = call_tool(mcp_server.replace_blob, record.id, "***not base64***")

        assert result["success"] is False
        assert result["error_type"] == "validation"
        assert result["details"] == {"field": "content_base64"}
        assert service.store.read_all(record.id) == b"x"

    def test_replace_blob(self, service: BlobCompressor):
        record = service.upload(b"old", "doc.txt")
        payload = base64.b64encode(b"new content").decode("ascii")

        result = call_tool(mcp_server.replace_blob, record.id, payload)

        assert result["success"]
        assert result["result"]["md5"] == hashlib.md5(b"new content").hexdigest()
        assert service.store.read_all(record.id) == b"new content"

    def test_compress_all_by_type(self, service: BlobCompressor, tall_jpeg: bytes):
        service.upload(tall_jpeg, "a.jpg", "image/jpeg")
        service.upload(tall_jpeg, "b.jpg", "image/jpeg")

        result = call_tool(mcp_server.compress_all_by_type, "image/jpeg")

        assert result["success"]
        assert result["result"]["items_processed"] == 2
        assert result["result"]["bytes_freed"] > 0
        assert result["result"]["success_rate"] == 100.0

    def test_restore_conflict(self, service: BlobCompressor, small_png: bytes):
        """测试对象仍存在时恢复返回冲突错误"""
        record = service.upload(small_png, "a.png", "image/png")
        service.checkpoints.save(record, small_png)

        result = call_tool(mcp_server.restore_blob, record.id)
        listed = call_tool(mcp_server.list_checkpoints)
        discarded = call_tool(mcp_server.discard_checkpoint, record.id)

        assert result["error_type"] == "conflict"
        assert listed["checkpoints"] == [record.id]
        assert discarded == {"success": True, "blob_id": record.id}
        assert call_tool(mcp_server.list_checkpoints)["checkpoints"] == []

    def test_invalid_paging_is_validation_error(self, service: BlobCompressor):
        result = call_tool(mcp_server.list_blobs, page=0)

        assert result["error_type"] == "validation"


class TestConfiguration:
    """配置测试"""

    def test_env_overrides(self, monkeypatch, tmp_path):
        """测试环境变量覆盖默认配置"""
        monkeypatch.setenv("PBC_QUALITY", "70")
        monkeypatch.setenv("PBC_MAX_HEIGHT", "1200")
        monkeypatch.setenv("PBC_STORE_ROOT", str(tmp_path / "store"))
        monkeypatch.setenv("PBC_LOG_LEVEL", "debug")

        config = AppConfig()

        assert config.compression.QUALITY == 70
        assert config.compression.MAX_HEIGHT == 1200
        assert config.storage.STORE_ROOT == str(tmp_path / "store")
        assert config.logging.LOG_LEVEL == "DEBUG"

    def test_defaults(self, app_config: AppConfig):
        settings = ConfigBuilder(app_config).build()

        assert settings.quality == 55
        assert settings.max_height == 2000
        assert settings.min_size_bytes == 500_000
        assert settings.output_format == "JPEG"
        assert "PNG" in settings.valid_formats

    def test_from_config_uses_file_store(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PBC_STORE_ROOT", str(tmp_path / "store"))
        monkeypatch.setenv("PBC_RECOVERY_DIR", str(tmp_path / "recovery"))
        monkeypatch.setenv("PBC_CHUNK_SIZE", "4096")

        compressor = BlobCompressor.from_config(AppConfig())
        record = compressor.upload(b"y" * 10_000, "y.bin")

        assert isinstance(compressor.store, FileBlobStore)
        assert compressor.store.root == tmp_path / "store"
        assert compressor.checkpoints.directory == tmp_path / "recovery"
        assert record.chunk_size == 4096
        assert record.chunk_count == 3

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"quality": 0},
            {"quality": 101},
            {"max_height": 0},
            {"min_size_bytes": -1},
            {"output_format": "NOPE"},
        ],
    )
    def test_builder_rejects_invalid_settings(self, app_config: AppConfig, kwargs):
        with pytest.raises(ValidationError):
            ConfigBuilder(app_config).build(**kwargs)

    @pytest.mark.parametrize("chunk_size", [0, 512, 64 * 1024 * 1024])
    def test_builder_rejects_invalid_chunk_size(
        self, app_config: AppConfig, chunk_size
    ):
        with pytest.raises(ValidationError):
            ConfigBuilder(app_config).chunk_size(chunk_size)
