"""消息格式化工具模块。

提供统一的错误消息、进度消息格式化功能。
"""

from typing import Any

from humanize import naturalsize


class MessageFormatter:
    """统一的消息格式化器"""

    @staticmethod
    def blob_not_found(blob_id: str) -> str:
        """对象不存在错误消息"""
        return f"对象不存在: {blob_id}"

    @staticmethod
    def checkpoint_not_found(blob_id: str) -> str:
        """恢复检查点不存在错误消息"""
        return f"恢复检查点不存在: {blob_id}"

    @staticmethod
    def operation_failed(
        operation: str, target: str, error: Exception | None = None
    ) -> str:
        """操作失败消息"""
        msg = f"{operation}失败: {target}"
        if error:
            msg += f" - {error}"
        return msg

    @staticmethod
    def validation_error(field: str, value: Any, reason: str | None = None) -> str:
        """参数验证错误消息"""
        msg = f"参数验证失败 - {field}: {value}"
        if reason:
            msg += f" ({reason})"
        return msg

    @staticmethod
    def format_error(operation: str, blob_id: str | None, error: Exception) -> str:
        """格式化通用错误消息"""
        return f"{operation}失败 [{blob_id or '-'}]: {error}"

    @staticmethod
    def batch_progress(mimetype: str, processed: int, failed: int, freed: int) -> str:
        """批量进度消息"""
        return (
            f"[{mimetype}] 已处理 {processed} 个，失败 {failed} 个，"
            f"释放 {naturalsize(freed, binary=True)}"
        )


# 便捷函数
def format_validation_error(field: str, value: Any, expected: str | None = None) -> str:
    """格式化验证错误消息"""
    reason = f"期望: {expected}" if expected else None
    return MessageFormatter.validation_error(field, value, reason)
