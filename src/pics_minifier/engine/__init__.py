"""批量处理引擎模块。

包含批量编排与滑动窗口并发执行。
"""

from .batch import BatchOrchestrator
from .concurrent_executor import ConcurrentExecutor


__all__ = [
    "BatchOrchestrator",
    "ConcurrentExecutor",
]
