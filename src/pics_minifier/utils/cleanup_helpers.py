"""清理工具模块。

管理压缩过程中产生的临时文件，保证任何退出路径都会被清理。
"""

import os
import tempfile
from pathlib import Path
from typing import Any

from .logging_helpers import get_logger


logger = get_logger()

TEMP_PREFIX = ".pics-minifier-"


class TempFileManager:
    """临时文件管理器

    用作上下文管理器，退出时删除所有登记的临时文件。
    """

    def __init__(self) -> None:
        self.temp_files: set[Path] = set()

    def register_temp_file(self, file_path: Path) -> None:
        """登记临时文件"""
        self.temp_files.add(file_path)

    def release(self, file_path: Path) -> None:
        """取消登记（文件已被重命名为最终输出时调用）"""
        self.temp_files.discard(file_path)

    def create_temp_file(self, directory: Path | None = None, suffix: str = "") -> Path:
        """在指定目录创建并登记一个空的临时文件

        Args:
            directory: 所在目录，None 时使用系统临时目录
            suffix: 文件后缀（含点）

        Returns:
            Path: 临时文件路径
        """
        fd, name = tempfile.mkstemp(
            prefix=TEMP_PREFIX,
            suffix=suffix,
            dir=str(directory) if directory is not None else None,
        )
        os.close(fd)
        path = Path(name)
        self.register_temp_file(path)
        return path

    def cleanup_temp_files(self) -> int:
        """清理所有登记的临时文件"""
        cleaned_count = 0
        for file_path in self.temp_files:
            try:
                if file_path.exists():
                    file_path.unlink()
                    cleaned_count += 1
                    logger.debug(f"已清理临时文件: {file_path}")
            except OSError as e:
                logger.warning(f"清理临时文件失败 {file_path}: {e}")

        self.temp_files.clear()
        return cleaned_count

    def __enter__(self) -> "TempFileManager":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """退出时总是清理"""
        del exc_type, exc_val, exc_tb
        self.cleanup_temp_files()
