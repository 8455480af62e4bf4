"""持久化 CSV 结果日志模块。

每个 Outcome 追加一行；写入由锁串行化，超过大小上限时轮转，
发现文件缺少表头时补写表头。
"""

import csv
import io
import os
import threading
from pathlib import Path

from ..config import get_config
from ..models.constants import CsvLogFields
from ..models.outcome import Outcome
from ..utils.logging_helpers import get_logger
from ..utils.message_formatter import format_file_error


logger = get_logger()


class SafeCSVLogger:
    """线程安全的 CSV 结果日志

    写入失败只记录警告，不影响批处理本身。
    """

    def __init__(
        self,
        path: str | Path | None = None,
        max_bytes: int | None = None,
        backup_count: int | None = None,
        enabled: bool | None = None,
    ):
        """初始化日志

        Args:
            path: 日志文件路径，None 时使用配置值
            max_bytes: 轮转阈值（字节）
            backup_count: 保留的历史文件数
            enabled: 是否启用
        """
        defaults = get_config().logging
        self.path = Path(path or defaults.CSV_LOG_PATH).expanduser()
        self.max_bytes = defaults.CSV_LOG_MAX_SIZE if max_bytes is None else max_bytes
        self.backup_count = defaults.CSV_LOG_BACKUP_COUNT if backup_count is None else backup_count
        self.enabled = defaults.ENABLE_CSV_LOG if enabled is None else enabled
        self._lock = threading.Lock()

    def log(self, outcome: Outcome) -> None:
        """追加一条结果"""
        if not self.enabled:
            return
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._rotate_if_needed()
                self._ensure_header()
                with self.path.open("a", newline="", encoding="utf-8") as f:
                    csv.DictWriter(f, fieldnames=CsvLogFields.HEADER).writerow(outcome.to_log_row())
            except OSError as e:
                logger.warning(format_file_error("写入结果日志", self.path, e))

    def read_recent_entries(self, limit: int = 100) -> list[dict[str, str]]:
        """读取最近的 limit 条记录（不含表头）"""
        with self._lock:
            try:
                with self.path.open(newline="", encoding="utf-8") as f:
                    rows = list(csv.DictReader(f))
            except FileNotFoundError:
                return []
            except OSError as e:
                logger.warning(format_file_error("读取结果日志", self.path, e))
                return []
        return rows[-limit:] if limit > 0 else []

    def log_file_size(self) -> int:
        try:
            return self.path.stat().st_size
        except OSError:
            return 0

    def rotated_path(self, index: int) -> Path:
        """第 index 个历史文件，例如 compression_log.1.csv"""
        return self.path.with_name(f"{self.path.stem}.{index}{self.path.suffix}")

    def _rotate_if_needed(self) -> None:
        if self.log_file_size() < self.max_bytes:
            return

        if self.backup_count <= 0:
            self.path.unlink()
            return

        oldest = self.rotated_path(self.backup_count)
        if oldest.exists():
            oldest.unlink()
        for index in range(self.backup_count - 1, 0, -1):
            source = self.rotated_path(index)
            if source.exists():
                os.replace(source, self.rotated_path(index + 1))
        os.replace(self.path, self.rotated_path(1))
        logger.info(f"结果日志已轮转: {self.path}")

    def _ensure_header(self) -> None:
        """新文件写入表头；已有文件缺少表头时在开头补写"""
        header_line = self._header_line()
        if not self.path.exists() or self.path.stat().st_size == 0:
            self.path.write_text(header_line, encoding="utf-8", newline="")
            return

        with self.path.open(newline="", encoding="utf-8") as f:
            first_row = next(csv.reader(f), [])
        if tuple(first_row) == CsvLogFields.HEADER:
            return

        logger.warning(f"结果日志缺少表头，已补写: {self.path}")
        with self.path.open(newline="", encoding="utf-8") as f:
            content = f.read()
        temp = self.path.with_name(f".{self.path.name}.tmp")
        temp.write_text(header_line + content, encoding="utf-8", newline="")
        os.replace(temp, self.path)

    @staticmethod
    def _header_line() -> str:
        buffer = io.StringIO()
        csv.writer(buffer).writerow(CsvLogFields.HEADER)
        return buffer.getvalue()
