"""格式处理器模块。

为输出格式准备图片色彩模式，并生成对应的保存参数。
"""

import logging
from typing import Any

from PIL import Image


logger = logging.getLogger(__name__)

# 透明区域合成时使用的背景色
_BACKGROUND_COLOR = (255, 255, 255)


class FormatProcessor:
    """格式处理器"""

    def __init__(self) -> None:
        """初始化格式处理器"""
        # 动态获取 Pillow 可写出的格式（先加载全部插件）
        Image.init()
        self.supported_formats = {fmt.upper() for fmt in Image.SAVE}
        logger.debug(f"可输出的格式: {sorted(self.supported_formats)}")

    def prepare_for_format(self, img: Image.Image, target_format: str) -> Image.Image:
        """为目标格式准备图片

        Args:
            img: PIL图片对象
            target_format: 目标格式

        Returns:
            Image.Image: 处理后的图片对象
        """
        if target_format not in self.supported_formats:
            logger.warning(f"不支持的输出格式: {target_format}, 使用JPEG")
            target_format = "JPEG"

        match target_format:
            case "JPEG":
                return self._prepare_for_jpeg(img)
            case "PNG" | "WEBP":
                return self._prepare_keep_alpha(img)
            case _:
                return img

    def _prepare_for_jpeg(self, img: Image.Image) -> Image.Image:
        """JPEG 不支持透明度，把 alpha 合成到背景上并转换为 RGB"""
        if img.mode == "P":
            img = img.convert("RGBA" if "transparency" in img.info else "RGB")

        if img.mode in ("RGBA", "LA", "PA"):
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, _BACKGROUND_COLOR)
            background.paste(rgba, mask=rgba.split()[-1])
            return background

        # CMYK、灰度、二值、16位等其他模式统一转 RGB
        if img.mode != "RGB":
            return img.convert("RGB")

        return img

    def _prepare_keep_alpha(self, img: Image.Image) -> Image.Image:
        """保留透明通道的格式只需规范化少见的模式"""
        if img.mode in ("RGB", "RGBA", "L", "LA"):
            return img
        if img.mode == "P" and "transparency" not in img.info:
            return img.convert("RGB")
        return img.convert("RGBA")


def get_save_parameters(target_format: str, quality: int) -> dict[str, Any]:
    """获取指定格式的保存参数

    Args:
        target_format: 输出格式
        quality: 输出质量 1-100

    Returns:
        dict[str, Any]: 传给 Image.save 的参数
    """
    match target_format:
        case "JPEG":
            return {"format": "JPEG", "quality": quality, "optimize": True}
        case "WEBP":
            return {"format": "WEBP", "quality": quality, "method": 6}
        case "PNG":
            return {"format": "PNG", "optimize": True}
        case _:
            return {"format": target_format}
