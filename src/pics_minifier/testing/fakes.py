"""测试用的协议替身实现。

不依赖任何外部压缩工具或原生库，可记录调用、模拟失败与延迟，并统计并发度。
"""

import threading
import time
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path

from ..core.process_runner import ProcessResult
from ..core.webp_bridge import CodecAvailability, DecodedImage
from ..models.outcome import BatchSummary, Outcome


# 这些参数后面紧跟输出路径
_OUTPUT_FLAGS = ("-outfile", "--out", "-o", "--output")


class FakeProcessRunner:
    """模拟外部工具执行

    默认把输入文件的前 output_ratio 部分写入输出路径并返回 0。
    """

    def __init__(
        self,
        output_ratio: float = 0.5,
        output_bytes: bytes | None = None,
        delay_seconds: float = 0.0,
        exit_code: int = 0,
        stderr: bytes = b"",
        error: Exception | None = None,
        on_run: Callable[[Path, list[str]], None] | None = None,
    ):
        self.output_ratio = output_ratio
        self.output_bytes = output_bytes
        self.delay_seconds = delay_seconds
        self.exit_code = exit_code
        self.stderr = stderr
        self.error = error
        # 输出写入之后、返回之前调用
        self.on_run = on_run

        self.calls: list[tuple[Path, list[str]]] = []
        self.active = 0
        self.max_concurrent = 0
        self._lock = threading.Lock()

    def set_failure_mode(self, exit_code: int = 1, stderr: bytes = b"simulated failure") -> None:
        """之后的调用都以非零状态退出"""
        self.exit_code = exit_code
        self.stderr = stderr

    def set_delay(self, seconds: float) -> None:
        self.delay_seconds = seconds

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def run(
        self,
        executable: str | Path,
        arguments: Sequence[str],
        timeout: float | None = None,
        max_output_bytes: int | None = None,
        working_dirs: Iterable[str | Path] = (),
    ) -> ProcessResult:
        args = list(arguments)
        with self._lock:
            self.calls.append((Path(executable), args))
            self.active += 1
            self.max_concurrent = max(self.max_concurrent, self.active)

        try:
            if self.delay_seconds > 0:
                time.sleep(self.delay_seconds)
            if self.error is not None:
                raise self.error
            if self.exit_code != 0:
                return ProcessResult(exit_code=self.exit_code, stdout=b"", stderr=self.stderr)

            source, output = self._split_paths(args)
            output.write_bytes(self._produce(source))
            if self.on_run is not None:
                self.on_run(Path(executable), args)
            return ProcessResult(exit_code=0, stdout=b"", stderr=b"")
        finally:
            with self._lock:
                self.active -= 1

    @staticmethod
    def _split_paths(args: list[str]) -> tuple[Path, Path]:
        """从参数中找出 (输入, 输出)"""
        for flag in _OUTPUT_FLAGS:
            if flag in args:
                return Path(args[-1]), Path(args[args.index(flag) + 1])
        # cjpegli 与 avifenc 的参数以 "输入 输出" 结尾
        return Path(args[-2]), Path(args[-1])

    def _produce(self, source: Path) -> bytes:
        if self.output_bytes is not None:
            return self.output_bytes
        data = source.read_bytes()
        return data[: max(1, int(len(data) * self.output_ratio))]


class FakeToolLocator:
    """按预设表返回工具路径"""

    def __init__(self, paths: dict[str, Path] | None = None):
        self.paths = dict(paths or {})
        self.lookups: list[str] = []

    def locate(self, tool: str) -> Path | None:
        self.lookups.append(tool)
        return self.paths.get(tool)


class FakeCodecBridge:
    """模拟内嵌 libwebp

    decode 返回 1x1 像素并记住输入长度；encode 返回输入长度乘以 output_ratio 的数据。
    """

    def __init__(
        self,
        availability: CodecAvailability = CodecAvailability.EMBEDDED,
        output_ratio: float = 0.5,
        fail_decode: bool = False,
        fail_encode: bool = False,
    ):
        self._availability = availability
        self.output_ratio = output_ratio
        self.fail_decode = fail_decode
        self.fail_encode = fail_encode
        self.encode_calls: list[tuple[int, int, float]] = []
        self._last_input_size = 0

    def availability(self) -> CodecAvailability:
        return self._availability

    def encode(self, pixels: bytes, width: int, height: int, quality: float) -> bytes | None:
        self.encode_calls.append((width, height, quality))
        if self.fail_encode:
            return None
        size = max(1, int(self._last_input_size * self.output_ratio))
        return (b"RIFF" + b"\x00" * size)[:size]

    def decode(self, data: bytes) -> DecodedImage | None:
        if self.fail_decode or not data:
            return None
        self._last_input_size = len(data)
        return DecodedImage(pixels=bytes([0, 0, 0, 255]), width=1, height=1, stride=4)


class InMemoryOutcomeSink:
    """收集所有结果"""

    def __init__(self) -> None:
        self.outcomes: list[Outcome] = []
        self._lock = threading.Lock()

    def log(self, outcome: Outcome) -> None:
        with self._lock:
            self.outcomes.append(outcome)


class InMemoryStatsSink:
    """收集每批汇总"""

    def __init__(self) -> None:
        self.summaries: list[BatchSummary] = []

    def record_batch(self, summary: BatchSummary) -> None:
        self.summaries.append(summary)
