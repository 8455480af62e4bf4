"""依赖注入使用的协议定义。

编排器与引擎只依赖这些结构化接口，测试时可以替换为 testing.fakes 中的实现。
"""

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Protocol

from ..models.outcome import BatchSummary, Outcome
from .process_runner import ProcessResult
from .webp_bridge import CodecAvailability, DecodedImage


class ProcessRunner(Protocol):
    """外部进程执行"""

    def run(
        self,
        executable: str | Path,
        arguments: Sequence[str],
        timeout: float | None = None,
        max_output_bytes: int | None = None,
        working_dirs: Iterable[str | Path] = (),
    ) -> ProcessResult:
        """执行外部程序并返回退出码与输出"""
        ...


class ToolResolver(Protocol):
    """外部工具定位"""

    def locate(self, tool: str) -> Path | None:
        """返回工具的可执行路径，不可用时返回 None"""
        ...


class CodecBridge(Protocol):
    """内嵌编解码库"""

    def availability(self) -> CodecAvailability:
        """当前可用的编解码层级"""
        ...

    def encode(self, pixels: bytes, width: int, height: int, quality: float) -> bytes | None:
        """编码 RGBA 像素，失败返回 None"""
        ...

    def decode(self, data: bytes) -> DecodedImage | None:
        """解码为 RGBA 像素，失败返回 None"""
        ...


class OutcomeSink(Protocol):
    """结果持久化"""

    def log(self, outcome: Outcome) -> None:
        ...


class StatsSink(Protocol):
    """统计汇总"""

    def record_batch(self, summary: BatchSummary) -> None:
        ...
