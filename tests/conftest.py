"""测试配置文件。

提供测试所需的fixtures和配置。所有测试图像都用 Pillow 现场生成。
"""

import io
import os

import pytest
from PIL import Image, ImageDraw

from py_blob_compress_mcp.core.compression_engine import CompressionEngine
from py_blob_compress_mcp.engine.replacement import ReplacementOrchestrator
from py_blob_compress_mcp.models import EngineSettings
from py_blob_compress_mcp.storage import CheckpointStore, FileBlobStore, MemoryBlobStore


# 测试场景使用的阈值：压缩阈值 150000 字节、最大高度 2000、质量 60
TEST_MIN_SIZE_BYTES = 150_000
TEST_MAX_HEIGHT = 2000
TEST_QUALITY = 60


def noise_image(width: int, height: int, mode: str = "RGB") -> Image.Image:
    """随机噪声图像，几乎无法被压缩，用于得到足够大的文件"""
    channels = len(mode)
    return Image.frombytes(mode, (width, height), os.urandom(width * height * channels))


def to_bytes(img: Image.Image, format: str, **params) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format=format, **params)
    return buffer.getvalue()


def make_jpeg(width: int, height: int, quality: int = 95, **params) -> bytes:
    return to_bytes(noise_image(width, height), "JPEG", quality=quality, **params)


def decode_size(data: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(data)) as img:
        return img.size


@pytest.fixture
def tall_jpeg() -> bytes:
    """高 3000 像素、远超压缩阈值的 JPEG"""
    data = make_jpeg(300, 3000)
    assert len(data) > TEST_MIN_SIZE_BYTES
    return data


@pytest.fixture
def short_jpeg() -> bytes:
    """超过压缩阈值但高度未超过最大高度的 JPEG"""
    data = make_jpeg(600, 800)
    assert len(data) > TEST_MIN_SIZE_BYTES
    return data


@pytest.fixture
def small_png() -> bytes:
    """高 400 像素、远小于压缩阈值的 PNG"""
    img = Image.new("RGB", (400, 400), color="white")
    draw = ImageDraw.Draw(img)
    for i in range(10):
        box = [i * 30, i * 30, i * 30 + 60, i * 30 + 40]
        draw.rectangle(box, fill=(i * 20, 80, 160))
    data = to_bytes(img, "PNG")
    assert len(data) < TEST_MIN_SIZE_BYTES
    return data


@pytest.fixture
def transparent_png() -> bytes:
    """带透明通道、超过压缩阈值的 PNG"""
    data = to_bytes(noise_image(400, 400, "RGBA"), "PNG")
    assert len(data) > TEST_MIN_SIZE_BYTES
    return data


@pytest.fixture
def large_bmp() -> bytes:
    """不在有效格式内的大图像"""
    data = to_bytes(noise_image(300, 300), "BMP")
    assert len(data) > TEST_MIN_SIZE_BYTES
    return data


@pytest.fixture
def truncated_jpeg(tall_jpeg: bytes) -> bytes:
    """文件头完整但数据被截断的 JPEG"""
    return tall_jpeg[: len(tall_jpeg) // 2]


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings(
        min_size_bytes=TEST_MIN_SIZE_BYTES,
        max_height=TEST_MAX_HEIGHT,
        quality=TEST_QUALITY,
    )


@pytest.fixture
def engine(engine_settings: EngineSettings) -> CompressionEngine:
    return CompressionEngine(engine_settings)


@pytest.fixture
def memory_store() -> MemoryBlobStore:
    return MemoryBlobStore(chunk_size=64 * 1024)


@pytest.fixture
def file_store(tmp_path) -> FileBlobStore:
    return FileBlobStore(tmp_path / "blobs", chunk_size=64 * 1024)


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    """同时覆盖内存与文件系统两种存储"""
    if request.param == "memory":
        return MemoryBlobStore(chunk_size=1024)
    return FileBlobStore(tmp_path / "blobs", chunk_size=1024)


@pytest.fixture
def checkpoints(tmp_path) -> CheckpointStore:
    return CheckpointStore(tmp_path / "recovery")


@pytest.fixture
def orchestrator(
    memory_store: MemoryBlobStore,
    engine: CompressionEngine,
    checkpoints: CheckpointStore,
) -> ReplacementOrchestrator:
    return ReplacementOrchestrator(memory_store, engine, checkpoints)
