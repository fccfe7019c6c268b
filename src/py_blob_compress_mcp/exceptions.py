"""对象压缩异常处理模块。

定义统一的异常类和错误处理机制，包含图像解码异常处理装饰器。
"""

import logging
from collections.abc import Callable
from functools import wraps
from typing import TypeVar

from PIL.Image import DecompressionBombError

from .utils.logging_helpers import get_logger
from .utils.message_formatter import MessageFormatter


logger = get_logger()
T = TypeVar("T")


# 统一的异常类型
class CompressionError(Exception):
    """对象压缩相关错误基类"""

    def __init__(self, message: str, blob_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.blob_id = blob_id


class ValidationError(CompressionError):
    """参数验证错误 - 统一的验证错误类型"""

    pass


class NotFoundError(CompressionError):
    """查找未命中"""

    pass


class BlobNotFoundError(NotFoundError):
    """对象存储中不存在该 id"""

    def __init__(self, blob_id: str):
        super().__init__(MessageFormatter.blob_not_found(blob_id), blob_id)


class CheckpointNotFoundError(NotFoundError):
    """恢复区中不存在该 id 的检查点"""

    def __init__(self, blob_id: str):
        super().__init__(MessageFormatter.checkpoint_not_found(blob_id), blob_id)


class DecodeError(CompressionError):
    """已识别格式的图像无法解码（损坏、截断或过大）"""

    pass


class StorageIOError(CompressionError):
    """文件系统或流读写失败"""

    pass


class PartialFailureError(CompressionError):
    """原对象已删除但重新写入未完成，只能通过检查点恢复"""

    pass


class RestoreConflictError(CompressionError):
    """恢复时目标 id 下仍存在对象"""

    pass


# 图像解码异常处理装饰器
def handle_image_errors(operation_name: str = "图像解码"):
    """统一的图像解码异常处理装饰器

    把 Pillow 及系统层抛出的解码异常统一转换为 DecodeError。
    已经是 CompressionError 的异常原样抛出。

    Args:
        operation_name: 操作名称，用于日志记录
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except CompressionError:
                raise
            except DecompressionBombError as e:
                logger.error(f"{operation_name} - 图像过大: {e}")
                raise DecodeError(f"图像尺寸过大，可能存在安全风险: {e}") from e
            except (OSError, SyntaxError) as e:
                logger.error(f"{operation_name} - 图像数据损坏: {e}")
                raise DecodeError(f"图像解码失败: {e}") from e
            except (ValueError, TypeError) as e:
                logger.error(f"{operation_name} - 参数错误: {e}")
                raise DecodeError(f"图像解码参数错误: {e}") from e

        return wrapper

    return decorator


def handle_storage_errors(operation_name: str = "存储操作"):
    """统一的存储异常处理装饰器

    把文件系统层的 OSError 转换为 StorageIOError，其他异常原样抛出。

    Args:
        operation_name: 操作名称，用于日志记录
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except CompressionError:
                raise
            except OSError as e:
                logger.error(f"{operation_name} - 读写失败: {e}")
                raise StorageIOError(f"{operation_name}失败: {e}") from e

        return wrapper

    return decorator


class ErrorHandler:
    """统一错误处理器

    提供标准化的错误日志记录功能。
    """

    @staticmethod
    def log_error(
        operation: str,
        blob_id: str | None,
        error: Exception,
        level: str = "error",
        log: logging.Logger | None = None,
    ) -> None:
        """标准化的错误日志记录

        Args:
            operation: 操作名称（如"对象压缩"、"检查点写入"等）
            blob_id: 相关对象 id
            error: 异常对象
            level: 日志级别 ("error", "warning", "debug")
            log: 调用方注入的日志记录器，默认使用模块日志记录器
        """
        target = log or logger
        log_msg = MessageFormatter.format_error(operation, blob_id, error)
        getattr(target, level, target.error)(log_msg)

    @staticmethod
    def level_for(error: Exception) -> str:
        """根据异常类型选择日志级别，支持 match-case 分发"""
        match error:
            case PartialFailureError():
                return "critical"
            case NotFoundError() | ValidationError():
                return "warning"
            case DecodeError():
                return "warning"
            case _:
                return "error"

    @staticmethod
    def handle_item_failure(
        error: Exception,
        blob_id: str,
        operation: str = "对象压缩",
        log: logging.Logger | None = None,
    ) -> str:
        """批量处理中单个对象失败：记录日志并返回错误描述，不再抛出

        Returns:
            str: 用于结果汇总的错误描述
        """
        level = ErrorHandler.level_for(error)
        ErrorHandler.log_error(operation, blob_id, error, level, log)
        if isinstance(error, PartialFailureError):
            (log or logger).critical(
                f"对象 {blob_id} 已删除但未重新写入，需通过检查点恢复"
            )
        return f"{operation}: {error}"
