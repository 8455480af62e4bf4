"""线程安全的统计存储模块。"""

import threading

from ..models.constants import ValidationLimits
from ..models.outcome import BatchSummary, SessionStats
from ..utils.logging_helpers import get_logger


logger = get_logger()


def _clamped_add(current: int, delta: int) -> int:
    """非负累加，结果不超过 2^63 - 1"""
    if delta <= 0:
        return current
    return min(ValidationLimits.MAX_SAVED_BYTES, current + delta)


class SafeStatsStore:
    """累计统计

    每批结束时由编排器调用一次 record_batch；所有读写都在同一把锁内完成。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats = SessionStats()

    def record_batch(self, summary: BatchSummary) -> None:
        """合并一批的汇总"""
        with self._lock:
            s = self._stats
            self._stats = SessionStats(
                total_files=_clamped_add(s.total_files, summary.total),
                processed_files=_clamped_add(s.processed_files, summary.success),
                successful_files=_clamped_add(s.successful_files, summary.success),
                failed_files=_clamped_add(s.failed_files, summary.failed),
                skipped_files=_clamped_add(s.skipped_files, summary.skipped),
                total_original_size=_clamped_add(s.total_original_size, summary.original_bytes),
                total_compressed_size=_clamped_add(s.total_compressed_size, summary.new_bytes),
                total_saved_bytes=_clamped_add(s.total_saved_bytes, summary.bytes_saved),
            )
        logger.debug(f"统计已更新: 累计节省 {self._stats.get_saved_human()}")

    def add_processed_file(self, saved_bytes: int = 0) -> None:
        """单独记录一个已处理文件"""
        with self._lock:
            s = self._stats
            self._stats = s.model_copy(
                update={
                    "processed_files": _clamped_add(s.processed_files, 1),
                    "total_saved_bytes": _clamped_add(s.total_saved_bytes, saved_bytes),
                }
            )

    @property
    def processed_count(self) -> int:
        with self._lock:
            return self._stats.processed_files

    @property
    def total_saved_bytes(self) -> int:
        with self._lock:
            return self._stats.total_saved_bytes

    def snapshot(self) -> SessionStats:
        """当前统计的不可变快照"""
        with self._lock:
            return self._stats

    def reset(self) -> None:
        with self._lock:
            self._stats = SessionStats()
