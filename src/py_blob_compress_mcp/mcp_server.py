"""对象压缩 MCP 服务器。

以 MCP 工具的形式暴露对象列表、统计、下载、压缩、恢复和内容替换。
工具永远返回字典，错误以标准化的错误响应返回，不向客户端抛出异常。
"""

import base64
import binascii
from typing import Any

from fastmcp import FastMCP

from .compressor import BlobCompressor, record_to_dict
from .config import get_config
from .exceptions import (
    CompressionError,
    DecodeError,
    NotFoundError,
    PartialFailureError,
    RestoreConflictError,
    StorageIOError,
    ValidationError,
)
from .models import BatchProgress, ReplacementResult
from .utils.logging_helpers import configure_logging, get_logger
from .utils.message_formatter import MessageFormatter


# MCP 服务器响应类型定义
MCPResponse = dict[str, Any]


class MCPResponseBuilder:
    """MCP 服务器响应构建器，专门用于构建符合 MCP 协议的响应格式。"""

    @staticmethod
    def error(
        message: str,
        error_type: str = "general",
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """构建错误结果。

        Args:
            message: 错误消息
            error_type: 错误类型
            details: 额外的错误详情

        Returns:
            dict: 标准化的错误响应
        """
        result = {
            "success": False,
            "error": message,
            "error_type": error_type,
        }

        if details:
            result["details"] = details

        return result

    @staticmethod
    def validation_error(message: str, field: str | None = None) -> dict[str, Any]:
        """构建验证错误结果。"""
        details = {"field": field} if field else None
        return MCPResponseBuilder.error(
            message=message,
            error_type="validation",
            details=details,
        )

    @staticmethod
    def not_found(message: str, blob_id: str | None = None) -> dict[str, Any]:
        """构建对象或检查点不存在的错误结果。"""
        details = {"blob_id": blob_id} if blob_id else None
        return MCPResponseBuilder.error(
            message=message,
            error_type="not_found",
            details=details,
        )

    @staticmethod
    def processing_error(message: str, operation: str | None = None) -> dict[str, Any]:
        """构建处理错误结果。"""
        details = {"operation": operation} if operation else None
        return MCPResponseBuilder.error(
            message=message,
            error_type="processing",
            details=details,
        )

    @staticmethod
    def from_exception(
        error: Exception, operation: str, blob_id: str | None = None
    ) -> dict[str, Any]:
        """根据异常类型构建错误结果"""
        message = str(error)
        match error:
            case ValidationError():
                return MCPResponseBuilder.validation_error(message)
            case NotFoundError():
                return MCPResponseBuilder.not_found(message, blob_id)
            case RestoreConflictError():
                return MCPResponseBuilder.error(
                    message, "conflict", {"blob_id": blob_id}
                )
            case PartialFailureError():
                return MCPResponseBuilder.error(
                    message,
                    "partial_failure",
                    {"blob_id": blob_id, "checkpoint_retained": True},
                )
            case DecodeError():
                return MCPResponseBuilder.error(
                    message, "decode", {"blob_id": blob_id}
                )
            case StorageIOError():
                return MCPResponseBuilder.error(
                    message, "storage", {"blob_id": blob_id}
                )
            case _:
                return MCPResponseBuilder.processing_error(message, operation)


def replacement_to_dict(result: ReplacementResult) -> dict[str, Any]:
    data = result.model_dump(mode="json")
    data["bytes_freed"] = result.bytes_freed
    data["summary"] = result.get_summary()
    return data


def progress_to_dict(progress: BatchProgress) -> dict[str, Any]:
    data = progress.model_dump(mode="json")
    data["success_rate"] = progress.get_success_rate()
    data["summary"] = progress.get_summary()
    return data


logger = get_logger()

# 创建MCP应用
mcp: FastMCP[Any] = FastMCP("对象压缩服务")

# 服务实例在首次调用时按配置创建
_service: BlobCompressor | None = None


def get_service() -> BlobCompressor:
    """获取（必要时创建）全局压缩服务"""
    global _service
    if _service is None:
        _service = BlobCompressor.from_config()
    return _service


def set_service(service: BlobCompressor | None) -> None:
    """替换全局压缩服务（主要用于测试）"""
    global _service
    _service = service


def _failure(
    error: Exception, operation: str, blob_id: str | None = None
) -> MCPResponse:
    if isinstance(error, CompressionError):
        logger.warning(MessageFormatter.format_error(operation, blob_id, error))
    else:
        logger.exception(MessageFormatter.format_error(operation, blob_id, error))
    return MCPResponseBuilder.from_exception(error, operation, blob_id)


# ============================================================================
# 查询工具
# ============================================================================


@mcp.tool()
def list_blobs(page: int = 1, per_page: int | None = None) -> MCPResponse:
    """分页列出所有对象（新对象优先）

    Args:
        page: 页码，从 1 开始
        per_page: 每页数量，默认使用配置的分页大小
    """
    try:
        return {"success": True, **get_service().list_blobs(page, per_page)}
    except Exception as e:
        return _failure(e, "列出对象")


@mcp.tool()
def list_blobs_by_type(
    mimetype: str, page: int = 1, per_page: int | None = None
) -> MCPResponse:
    """分页列出指定 MIME 类型的对象

    Args:
        mimetype: metadata.mimetype，例如 "image/jpeg"
        page: 页码，从 1 开始
        per_page: 每页数量
    """
    try:
        result = get_service().list_blobs(page, per_page, mimetype=mimetype)
        return {"success": True, "mimetype": mimetype, **result}
    except Exception as e:
        return _failure(e, "按类型列出对象")


@mcp.tool()
def get_file_types() -> MCPResponse:
    """列出存储中出现过的所有 MIME 类型"""
    try:
        return {"success": True, "file_types": get_service().get_file_types()}
    except Exception as e:
        return _failure(e, "获取文件类型")


@mcp.tool()
def get_total_size(mimetype: str | None = None) -> MCPResponse:
    """统计对象数量和总大小，并按类型给出明细

    Args:
        mimetype: 只统计该类型（可选）
    """
    try:
        return {"success": True, **get_service().get_total_size(mimetype)}
    except Exception as e:
        return _failure(e, "统计总大小")


@mcp.tool()
def download_blob(blob_id: str) -> MCPResponse:
    """下载对象内容（base64 编码）和对应的 HTTP 响应头

    Args:
        blob_id: 对象 id
    """
    try:
        record, headers, stream = get_service().download(blob_id)
        encoded = base64.b64encode(b"".join(stream)).decode("ascii")
        return {
            "success": True,
            "blob": record_to_dict(record),
            "headers": headers,
            "content_base64": encoded,
        }
    except Exception as e:
        return _failure(e, "下载对象", blob_id)


# ============================================================================
# 压缩与替换工具
# ============================================================================


@mcp.tool()
def compress_blob(blob_id: str) -> MCPResponse:
    """压缩单个对象，id 保持不变

    Args:
        blob_id: 对象 id
    """
    try:
        result = get_service().compress_blob(blob_id)
        return {"success": True, "result": replacement_to_dict(result)}
    except Exception as e:
        return _failure(e, "压缩对象", blob_id)


@mcp.tool()
def compress_all_by_type(mimetype: str) -> MCPResponse:
    """按类型批量压缩所有未压缩过的对象

    单个对象失败只记录日志，不中断批量处理。

    Args:
        mimetype: metadata.mimetype，例如 "image/png"
    """
    try:
        progress = get_service().compress_all_by_type(mimetype)
        return {"success": True, "result": progress_to_dict(progress)}
    except Exception as e:
        return _failure(e, "批量压缩")


@mcp.tool()
def restore_blob(blob_id: str) -> MCPResponse:
    """从恢复检查点重新写入对象

    只在原对象已被删除（替换中途失败）时可用。如果重新写入已经完成、
    只是检查点未清理，对象仍然存在，本工具返回 conflict 错误而不会覆盖；
    此时用 discard_checkpoint 丢弃检查点。

    Args:
        blob_id: 对象 id
    """
    try:
        result = get_service().restore_blob(blob_id)
        return {"success": True, "result": replacement_to_dict(result)}
    except Exception as e:
        return _failure(e, "恢复对象", blob_id)


@mcp.tool()
def replace_blob(blob_id: str, content_base64: str) -> MCPResponse:
    """用新内容替换对象，id 保持不变

    Args:
        blob_id: 对象 id
        content_base64: base64 编码的新内容
    """
    try:
        content = base64.b64decode(content_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        return MCPResponseBuilder.validation_error(
            MessageFormatter.validation_error("content_base64", "...", str(e)),
            "content_base64",
        )

    try:
        result = get_service().replace_blob(blob_id, content)
        return {"success": True, "result": replacement_to_dict(result)}
    except Exception as e:
        return _failure(e, "替换对象", blob_id)


# ============================================================================
# 检查点运维工具
# ============================================================================


@mcp.tool()
def list_checkpoints() -> MCPResponse:
    """列出所有未清理的恢复检查点"""
    try:
        return {"success": True, "checkpoints": get_service().list_checkpoints()}
    except Exception as e:
        return _failure(e, "列出检查点")


@mcp.tool()
def discard_checkpoint(blob_id: str) -> MCPResponse:
    """丢弃恢复检查点（对象已确认完好时使用）

    Args:
        blob_id: 对象 id
    """
    try:
        get_service().discard_checkpoint(blob_id)
        return {"success": True, "blob_id": blob_id}
    except Exception as e:
        return _failure(e, "丢弃检查点", blob_id)


# ============================================================================
# 应用入口
# ============================================================================


def main() -> None:
    """启动 MCP 服务器"""
    app_config = get_config()
    configure_logging(app_config.logging.LOG_LEVEL, app_config.logging.LOG_FORMAT)
    logger.info("启动对象压缩 MCP 服务器")
    mcp.run()


if __name__ == "__main__":
    main()
