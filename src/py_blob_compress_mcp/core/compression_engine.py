"""压缩引擎模块。

决定一段图像字节是否需要重新编码，并执行缩放与重新编码。
格式按内容签名识别（Pillow 解析文件头），与文件名扩展名无关。
"""

import io
import logging
from collections.abc import Callable, Iterable, Iterator

from PIL import Image, ImageFile, ImageOps, UnidentifiedImageError

from ..exceptions import ValidationError, handle_image_errors
from ..models.compression_config import EngineSettings
from ..models.compression_result import CompressionDecision, ImageProbe
from ..models.constants import StorageDefaults, get_format_alias
from ..utils.chunk_helpers import split_into_chunks
from ..utils.logging_helpers import get_logger
from .formats import FormatProcessor, get_save_parameters


# EXIF 方向值 5-8 表示宽高需要互换
_TRANSPOSED_ORIENTATIONS = frozenset({5, 6, 7, 8})
_EXIF_ORIENTATION_TAG = 0x0112

StreamStage = Callable[[Iterable[bytes]], Iterator[bytes]]


@handle_image_errors("图像识别")
def _open_image(data: bytes) -> Image.Image | None:
    """按内容识别图像，无法识别时返回 None（不视为错误）"""
    try:
        return Image.open(io.BytesIO(data))
    except UnidentifiedImageError:
        return None


@handle_image_errors("图像解码")
def _load_image(img: Image.Image) -> None:
    """完整解码像素数据，损坏或截断时抛出 DecodeError"""
    img.load()


@handle_image_errors("流式图像解码")
def _parse_stream(chunks: Iterable[bytes]) -> Image.Image:
    """逐块喂入增量解析器，返回解码完成的图像"""
    parser = ImageFile.Parser()
    for chunk in chunks:
        parser.feed(chunk)
    return parser.close()


def _detected_format(img: Image.Image) -> str | None:
    """按内容识别出的标准格式名（MPO 等变体归并为 JPEG）"""
    if not img.format:
        return None
    return get_format_alias(img.format)


def _oriented_size(img: Image.Image) -> tuple[int, int]:
    """考虑 EXIF 方向后的 (宽, 高)"""
    width, height = img.size
    orientation = img.getexif().get(_EXIF_ORIENTATION_TAG)
    if orientation in _TRANSPOSED_ORIENTATIONS:
        return height, width
    return width, height


class CompressionEngine:
    """图像压缩决策引擎

    配置在构造时固定：有效格式、输出质量、最大高度、压缩阈值。
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        logger: logging.Logger | None = None,
    ):
        """初始化压缩引擎

        Args:
            settings: 引擎配置，默认使用 EngineSettings()
            logger: 注入的日志记录器
        """
        self.settings = settings or EngineSettings()
        self.logger = logger or get_logger()
        self.format_processor = FormatProcessor()

    def probe(self, data: bytes) -> ImageProbe | None:
        """只读取文件头的元数据探测

        Returns:
            ImageProbe | None: 无法识别时返回 None
        """
        img = _open_image(data)
        if img is None:
            return None
        with img:
            width, height = _oriented_size(img)
            return ImageProbe(
                format=_detected_format(img) or "UNKNOWN",
                width=width,
                height=height,
                byte_size=len(data),
            )

    def compress(self, data: bytes) -> CompressionDecision:
        """判断并执行重新编码

        1. 按内容探测格式，不在有效格式内则原样返回
        2. 解码获取尺寸，解码失败抛出 DecodeError
        3. 字节数不超过阈值则原样返回
        4. 按比例缩放到不超过最大高度，以固定格式和质量重新编码

        Args:
            data: 原始图像字节

        Returns:
            CompressionDecision: 压缩决策结果
        """
        img = _open_image(data)
        if img is None:
            self.logger.debug("无法识别的内容格式，直通")
            return CompressionDecision(is_compressed=False, data=data)

        with img:
            detected_format = _detected_format(img)
            if detected_format not in self.settings.valid_formats:
                self.logger.debug(f"格式 {detected_format} 不在有效格式内，直通")
                return CompressionDecision(
                    is_compressed=False, data=data, format=detected_format
                )

            _load_image(img)
            oriented = ImageOps.exif_transpose(img)
            original_dimensions = oriented.size

            byte_size = len(data)
            if byte_size <= self.settings.min_size_bytes:
                self.logger.debug(
                    f"大小 {byte_size} 未超过阈值 {self.settings.min_size_bytes}，直通"
                )
                return CompressionDecision(
                    is_compressed=False,
                    data=data,
                    format=detected_format,
                    original_dimensions=original_dimensions,
                    final_dimensions=original_dimensions,
                )

            original_height = original_dimensions[1]
            target_height = min(original_height, self.settings.max_height)
            output, final_dimensions = self._encode(oriented, target_height)

        self.logger.debug(
            f"重新编码 {detected_format} {original_dimensions} → "
            f"{self.settings.output_format} {final_dimensions}"
        )
        return CompressionDecision(
            is_compressed=True,
            is_resized=original_height > self.settings.max_height,
            data=output,
            format=detected_format,
            original_dimensions=original_dimensions,
            final_dimensions=final_dimensions,
        )

    def compress_stage(
        self, source_height: int, chunk_size: int = StorageDefaults.CHUNK_SIZE
    ) -> StreamStage:
        """构造可组合的流式缩放/编码阶段

        目标高度在任何字节流过之前就确定，因此必须预先通过 probe 得到源图高度。

        Args:
            source_height: 源图高度
            chunk_size: 输出分块大小

        Returns:
            StreamStage: 接收字节块迭代器、产出编码后字节块的函数
        """
        if not source_height or source_height <= 0:
            raise ValidationError(
                f"流式压缩需要已知的源图高度，得到: {source_height}"
            )

        target_height = min(source_height, self.settings.max_height)

        def stage(chunks: Iterable[bytes]) -> Iterator[bytes]:
            img = _parse_stream(chunks)
            with img:
                # 与 probe 一致，先按 EXIF 方向旋转再缩放
                oriented = ImageOps.exif_transpose(img)
                output, _ = self._encode(oriented, target_height)
            yield from split_into_chunks(output, chunk_size)

        return stage

    def _encode(
        self, img: Image.Image, target_height: int
    ) -> tuple[bytes, tuple[int, int]]:
        """按目标高度等比缩放并以输出格式编码"""
        width, height = img.size
        if height > target_height:
            target_width = max(1, round(width * target_height / height))
            img = img.resize((target_width, target_height), Image.Resampling.LANCZOS)

        output_format = self.settings.output_format
        prepared = self.format_processor.prepare_for_format(img, output_format)

        save_params = get_save_parameters(output_format, self.settings.quality)

        buffer = io.BytesIO()
        prepared.save(buffer, **save_params)
        return buffer.getvalue(), prepared.size
