"""核心模块包。

单文件压缩流程：安全校验、工具定位、层级选择、编码与原子写入。
"""

from .cancellation import CancellationToken
from .compression_engine import CompressionEngine, process_image
from .formats import detect_format, get_save_parameters, system_codec_supports
from .process_runner import ProcessResult, SecureProcessRunner
from .security import PathValidator, build_safe_environment, sanitize_filename
from .strategy import (
    EmbeddedCodec,
    ExternalTool,
    Strategy,
    StrategySelector,
    SystemCodec,
    Unavailable,
)
from .tools import ToolAvailability, ToolLocator
from .webp_bridge import CodecAvailability, DecodedImage, WebPCodecBridge
from .writer import AtomicOutputWriter, plan_output_path


__all__ = [
    "AtomicOutputWriter",
    "CancellationToken",
    "CodecAvailability",
    "CompressionEngine",
    "DecodedImage",
    "EmbeddedCodec",
    "ExternalTool",
    "PathValidator",
    "ProcessResult",
    "SecureProcessRunner",
    "Strategy",
    "StrategySelector",
    "SystemCodec",
    "ToolAvailability",
    "ToolLocator",
    "Unavailable",
    "WebPCodecBridge",
    "build_safe_environment",
    "detect_format",
    "get_save_parameters",
    "plan_output_path",
    "process_image",
    "sanitize_filename",
    "system_codec_supports",
]
