"""消息格式化工具模块。

日志与结果原因中使用的文本统一在这里生成。
"""

from pathlib import Path
from typing import Any


class MessageFormatter:
    """统一的消息格式化器"""

    @staticmethod
    def file_not_found(file_path: str | Path) -> str:
        """文件不存在错误消息"""
        return f"文件不存在: {file_path}"

    @staticmethod
    def permission_error(path: str | Path, operation: str = "访问") -> str:
        """权限错误消息"""
        return f"权限错误，无法{operation}: {path}"

    @staticmethod
    def operation_failed(
        operation: str, target: str | Path, error: Exception | None = None
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
    def format_error(operation: str, path: str | Path, error: Exception) -> str:
        """格式化通用错误消息"""
        return f"{operation}失败 [{path}]: {error}"

    @staticmethod
    def tier_failed(tier: str, path: str | Path, error: Exception | str) -> str:
        """某一压缩层级失败，将尝试下一层级"""
        return f"压缩层级 {tier} 失败 [{path}]: {error}，尝试下一层级"

    @staticmethod
    def tool_exit(tool: str, exit_code: int, stderr: bytes | str = b"") -> str:
        """外部工具非零退出消息"""
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "无输出"
        return f"{tool} 退出码 {exit_code}: {detail}"

    @staticmethod
    def batch_finished(summary: str, cancelled: bool = False) -> str:
        """批处理完成消息"""
        prefix = "批处理已取消" if cancelled else "批处理完成"
        return f"{prefix}: {summary}"


def format_file_error(operation: str, file_path: str | Path, error: Exception) -> str:
    """格式化文件操作错误消息"""
    return MessageFormatter.format_error(operation, file_path, error)


def format_validation_error(field: str, value: Any, expected: str | None = None) -> str:
    """格式化验证错误消息"""
    reason = f"期望: {expected}" if expected else None
    return MessageFormatter.validation_error(field, value, reason)
