"""结果持久化与统计模块包。"""

from .csv_log import SafeCSVLogger
from .stats import SafeStatsStore


__all__ = ["SafeCSVLogger", "SafeStatsStore"]
