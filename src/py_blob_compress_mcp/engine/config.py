"""配置构建器模块。

从应用配置构建压缩引擎配置，集成参数验证功能。
"""

import logging
from collections.abc import Iterable

from pydantic import ValidationError as PydanticValidationError

from ..config import AppConfig, get_config
from ..exceptions import ValidationError as CustomValidationError
from ..models import CompressionValidators, EngineSettings


logger = logging.getLogger(__name__)


class ConfigBuilder:
    """压缩引擎配置构建器

    以 AppConfig 为默认值来源，显式传入的参数优先。
    """

    def __init__(self, app_config: AppConfig | None = None):
        """初始化配置构建器

        Args:
            app_config: 应用配置，默认使用全局配置
        """
        self.app_config = app_config or get_config()

    def build(
        self,
        quality: int | None = None,
        max_height: int | None = None,
        min_size_bytes: int | None = None,
        valid_formats: Iterable[str] | None = None,
        output_format: str | None = None,
    ) -> EngineSettings:
        """验证参数并构建引擎配置

        Args:
            quality: 输出质量 1-100
            max_height: 最大高度
            min_size_bytes: 压缩阈值（字节）
            valid_formats: 允许重新编码的格式
            output_format: 输出格式

        Returns:
            EngineSettings: 构建的配置对象

        Raises:
            CustomValidationError: 参数验证失败
        """
        defaults = self.app_config.compression

        try:
            self._validate_common_params(quality, max_height, min_size_bytes)
            if output_format is not None:
                output_format = CompressionValidators.validate_format(output_format)

            return EngineSettings(
                valid_formats=(
                    defaults.VALID_FORMATS if valid_formats is None else valid_formats
                ),
                quality=defaults.QUALITY if quality is None else quality,
                max_height=defaults.MAX_HEIGHT if max_height is None else max_height,
                min_size_bytes=(
                    defaults.MIN_SIZE_BYTES
                    if min_size_bytes is None
                    else min_size_bytes
                ),
                output_format=output_format or defaults.OUTPUT_FORMAT,
            )

        except PydanticValidationError as e:
            raise CustomValidationError(self._format_validation_error(e)) from e
        except CustomValidationError:
            raise
        except ValueError as e:
            raise CustomValidationError(f"配置构建失败: {e!s}") from e

    def chunk_size(self, chunk_size: int | None = None) -> int:
        """验证并返回分块大小，默认使用应用配置"""
        value = self.app_config.storage.CHUNK_SIZE if chunk_size is None else chunk_size
        try:
            return CompressionValidators.validate_chunk_size(value)
        except ValueError as e:
            raise CustomValidationError(str(e)) from e

    def _validate_common_params(
        self,
        quality: int | None,
        max_height: int | None,
        min_size_bytes: int | None,
    ) -> None:
        """通用参数验证方法"""
        try:
            CompressionValidators.validate_quality(quality)
        except ValueError as e:
            raise CustomValidationError(str(e)) from e

        if max_height is not None and max_height <= 0:
            raise CustomValidationError(f"最大高度必须大于 0，当前值: {max_height}")

        if min_size_bytes is not None and min_size_bytes < 0:
            raise CustomValidationError(
                f"压缩阈值不能为负数，当前值: {min_size_bytes}"
            )

    def _format_validation_error(self, error: PydanticValidationError) -> str:
        """格式化验证错误"""
        messages = []
        for err in error.errors():
            field = ".".join(str(loc) for loc in err["loc"])
            msg = err["msg"]
            if field:
                messages.append(f"{field}: {msg}")
            else:
                messages.append(msg)
        logger.debug(f"引擎配置验证失败: {messages}")
        return "; ".join(messages)


def build_settings(**kwargs) -> EngineSettings:
    """便捷的配置构建函数

    使用全局应用配置构建引擎配置。
    """
    return ConfigBuilder().build(**kwargs)
