"""工具模块包。

提供纯工具函数，不包含业务逻辑。
"""

from .cleanup_helpers import TempFileManager
from .logging_helpers import configure_logging, get_logger
from .message_formatter import (
    MessageFormatter,
    format_file_error,
    format_validation_error,
)


__all__ = [
    "MessageFormatter",
    "TempFileManager",
    "configure_logging",
    "format_file_error",
    "format_validation_error",
    "get_logger",
]
