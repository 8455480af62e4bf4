"""批量图像压缩编排引擎。

按格式选择压缩层级（专用外部工具 → 内嵌 libwebp → Pillow），
在沙箱化的子进程中执行，并以原子方式写回结果。
"""

__version__ = "0.1.0"
__description__ = "批量图像压缩编排引擎"

from .core.cancellation import CancellationToken
from .core.compression_engine import CompressionEngine, process_image
from .engine.batch import BatchOrchestrator
from .models.outcome import BatchProgress, BatchSummary, Outcome, OutcomeStatus
from .models.settings import CompressionRequest, Preset, ResizeSpec, SaveMode, Settings
from .sinks.csv_log import SafeCSVLogger
from .sinks.stats import SafeStatsStore


__all__ = [
    "BatchOrchestrator",
    "BatchProgress",
    "BatchSummary",
    "CancellationToken",
    "CompressionEngine",
    "CompressionRequest",
    "Outcome",
    "OutcomeStatus",
    "Preset",
    "ResizeSpec",
    "SafeCSVLogger",
    "SafeStatsStore",
    "SaveMode",
    "Settings",
    "get_version",
    "process_image",
]


def get_version() -> str:
    """获取版本号。"""
    return __version__
