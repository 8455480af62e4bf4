"""压缩引擎异常处理模块。

定义统一的异常类型，以及把异常转换为 Outcome 的错误处理器。
"""

from collections.abc import Callable
from enum import Enum
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from PIL.Image import DecompressionBombError, UnidentifiedImageError

from .models.constants import Reasons
from .models.outcome import Outcome, OutcomeStatus
from .utils.logging_helpers import get_logger
from .utils.message_formatter import MessageFormatter


if TYPE_CHECKING:
    from .models.settings import CompressionRequest


logger = get_logger()
T = TypeVar("T")


class CompressionError(Exception):
    """压缩相关错误基类"""

    def __init__(self, message: str, input_path: Path | None = None):
        super().__init__(message)
        self.message = message
        self.input_path = input_path


class ConfigurationError(CompressionError):
    """必需的工具缺失或未通过校验"""

    pass


class SecurityErrorKind(str, Enum):
    """安全错误类别"""

    PATH_TRAVERSAL = "path-traversal"
    UNAUTHORIZED_PATH = "unauthorized-path"
    UNSAFE_ARGUMENT = "unsafe-argument"
    PROCESS_TIMEOUT = "process-timeout"
    INVALID_EXECUTABLE = "invalid-executable"


class SecurityError(CompressionError):
    """进程沙箱相关错误"""

    kind: SecurityErrorKind

    def __init__(self, message: str, input_path: Path | None = None):
        super().__init__(message, input_path)


class PathTraversalError(SecurityError):
    kind = SecurityErrorKind.PATH_TRAVERSAL


class UnauthorizedPathError(SecurityError):
    kind = SecurityErrorKind.UNAUTHORIZED_PATH


class UnsafeArgumentError(SecurityError):
    kind = SecurityErrorKind.UNSAFE_ARGUMENT


class ProcessTimeoutError(SecurityError):
    kind = SecurityErrorKind.PROCESS_TIMEOUT


class InvalidExecutableError(SecurityError):
    kind = SecurityErrorKind.INVALID_EXECUTABLE


class ProcessingError(CompressionError):
    """编解码过程错误"""

    pass


class ToolExecutionError(ProcessingError):
    """外部工具以非零状态退出"""

    def __init__(
        self,
        tool: str,
        exit_code: int,
        stderr: bytes = b"",
        input_path: Path | None = None,
    ):
        super().__init__(MessageFormatter.tool_exit(tool, exit_code, stderr), input_path)
        self.tool = tool
        self.exit_code = exit_code
        self.stderr = stderr


class OutputWriteError(CompressionError):
    """写入或原子替换输出失败"""

    def __init__(self, message: str, input_path: Path | None = None, reason: str = Reasons.MOVE_FAILED):
        super().__init__(message, input_path)
        self.reason = reason


class OperationCancelled(CompressionError):
    """批处理已被取消"""

    pass


def handle_image_errors(operation_name: str = "图像处理"):
    """统一的 Pillow 异常转换装饰器

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
            except UnidentifiedImageError as e:
                logger.debug(f"{operation_name} - 无法识别图像格式: {e}")
                raise ProcessingError(f"无法识别图像格式: {e}") from e
            except DecompressionBombError as e:
                logger.warning(f"{operation_name} - 图像过大: {e}")
                raise ProcessingError(f"图像像素过多，拒绝处理: {e}") from e
            except OSError as e:
                logger.debug(f"{operation_name} - 文件操作失败: {e}")
                raise ProcessingError(f"编解码失败: {e}") from e
            except (ValueError, TypeError) as e:
                logger.debug(f"{operation_name} - 参数错误: {e}")
                raise ProcessingError(f"参数错误: {e}") from e

        return wrapper

    return decorator


class ErrorHandler:
    """统一错误处理器

    引擎内部的所有异常最终都在这里转换为 Error 状态的 Outcome。
    """

    @staticmethod
    def _log_error(
        operation: str, path: Path, error: Exception, level: str = "error"
    ) -> None:
        """标准化的错误日志记录

        Args:
            operation: 操作名称
            path: 相关文件路径
            error: 异常对象
            level: 日志级别 ("error", "warning", "debug")
        """
        log_msg = MessageFormatter.format_error(operation, path, error)
        getattr(logger, level, logger.error)(log_msg)

    @staticmethod
    def _original_size(path: Path) -> int:
        try:
            return path.stat().st_size if path.is_file() else 0
        except OSError:
            return 0

    @staticmethod
    def create_outcome(
        request: "CompressionRequest",
        status: OutcomeStatus,
        reason: str,
        source_format: str = "unknown",
        original_size: int | None = None,
        output_path: Path | None = None,
    ) -> Outcome:
        """创建输出与原文件一致的非成功结果

        Args:
            request: 对应请求
            status: 结果状态
            reason: 原因码
            source_format: 源格式
            original_size: 原始大小，None 时读取文件
            output_path: 输出路径，默认原路径
        """
        if original_size is None:
            original_size = ErrorHandler._original_size(request.source_path)

        return Outcome(
            source_format=source_format,
            target_format=source_format,
            original_path=request.source_path,
            output_path=output_path or request.source_path,
            original_size_bytes=original_size,
            new_size_bytes=original_size,
            status=status,
            reason=reason,
            request_id=request.request_id,
        )

    @staticmethod
    def outcome_from_exception(
        error: Exception,
        request: "CompressionRequest",
        operation: str = "图像压缩",
        source_format: str = "unknown",
        original_size: int | None = None,
    ) -> Outcome:
        """按异常类型分发，生成 Error 结果（取消为 Skipped）"""
        path = request.source_path
        match error:
            case OperationCancelled():
                logger.debug(f"{path.name}: {error}")
                return ErrorHandler.create_outcome(
                    request,
                    OutcomeStatus.SKIPPED,
                    Reasons.CANCELLED,
                    source_format=source_format,
                    original_size=original_size,
                )
            case OutputWriteError() as owe:
                ErrorHandler._log_error(f"{operation} - 输出写入", path, owe)
                reason = owe.reason
            case SecurityError() as se:
                ErrorHandler._log_error(f"{operation} - 安全校验", path, se, "warning")
                reason = se.kind.value
            case ConfigurationError() as ce:
                ErrorHandler._log_error(f"{operation} - 配置", path, ce, "warning")
                reason = "configuration-error"
            case ProcessingError() as pe:
                ErrorHandler._log_error(operation, path, pe, "warning")
                reason = "processing-error"
            case FileNotFoundError() as fnfe:
                ErrorHandler._log_error(operation, path, fnfe, "warning")
                reason = Reasons.FILE_NOT_FOUND
            case PermissionError() as pe:
                ErrorHandler._log_error(f"{operation} - 权限错误", path, pe)
                reason = "permission-denied"
            case OSError() as ose:
                ErrorHandler._log_error(f"{operation} - 系统错误", path, ose)
                reason = "io-error"
            case _:
                logger.exception(MessageFormatter.format_error(operation, path, error))
                reason = Reasons.UNEXPECTED

        return ErrorHandler.create_outcome(
            request,
            OutcomeStatus.ERROR,
            reason,
            source_format=source_format,
            original_size=original_size,
        )
