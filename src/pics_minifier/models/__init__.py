"""数据模型包。

定义压缩请求、设置与结果等数据结构。
"""

from .constants import (
    ContainerFormat,
    CsvLogFields,
    ImageFormats,
    Reasons,
    ToolNames,
    ValidationLimits,
)
from .outcome import (
    BatchProgress,
    BatchSummary,
    Outcome,
    OutcomeStatus,
    SessionStats,
)
from .settings import (
    CompressionRequest,
    Preset,
    ResizeCondition,
    ResizeSpec,
    SaveMode,
    Settings,
)


__all__ = [
    "BatchProgress",
    "BatchSummary",
    "CompressionRequest",
    "ContainerFormat",
    "CsvLogFields",
    "ImageFormats",
    "Outcome",
    "OutcomeStatus",
    "Preset",
    "Reasons",
    "ResizeCondition",
    "ResizeSpec",
    "SaveMode",
    "SessionStats",
    "Settings",
    "ToolNames",
    "ValidationLimits",
]
