"""安全外部进程执行模块。

在最小化环境中运行外部压缩工具，带超时与输出上限。
"""

import subprocess  # nosec B404
import threading
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from ..config import get_config
from ..exceptions import ProcessTimeoutError
from ..utils.logging_helpers import get_logger
from .security import PathValidator, build_safe_environment


logger = get_logger()

_CHUNK_SIZE = 4096
_TERMINATE_GRACE_SECONDS = 2.0


@dataclass(frozen=True)
class ProcessResult:
    """外部进程执行结果"""

    exit_code: int
    stdout: bytes
    stderr: bytes
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class _CappedReader(threading.Thread):
    """持续读取管道直到 EOF，只保留前 limit 个字节"""

    def __init__(self, stream: IO[bytes], limit: int):
        super().__init__(daemon=True)
        self.stream = stream
        self.limit = limit
        self.buffer = bytearray()

    def run(self) -> None:
        try:
            while chunk := self.stream.read(_CHUNK_SIZE):
                remaining = self.limit - len(self.buffer)
                if remaining > 0:
                    self.buffer.extend(chunk[:remaining])
        finally:
            self.stream.close()


class SecureProcessRunner:
    """安全的外部进程执行器

    执行前校验可执行文件与全部参数，替换为最小化环境；
    超时后强制结束子进程并抛出 ProcessTimeoutError。
    """

    def __init__(self, validator: PathValidator | None = None):
        self.validator = validator or PathValidator()

    def run(
        self,
        executable: str | Path,
        arguments: Sequence[str],
        timeout: float | None = None,
        max_output_bytes: int | None = None,
        working_dirs: Iterable[str | Path] = (),
    ) -> ProcessResult:
        """执行外部程序

        Args:
            executable: 可执行文件的绝对路径
            arguments: 参数列表（不经过 shell）
            timeout: 超时秒数，None 时使用配置的默认值
            max_output_bytes: stdout/stderr 各自的保留上限
            working_dirs: 额外允许出现在路径参数中的目录

        Returns:
            ProcessResult: 退出码与截断后的输出

        Raises:
            SecurityError: 路径、参数或可执行文件校验失败，或执行超时
            OSError: 进程无法启动
        """
        processing = get_config().processing
        timeout = processing.DEFAULT_TIMEOUT if timeout is None else timeout
        limit = processing.MAX_OUTPUT_BYTES if max_output_bytes is None else max_output_bytes

        binary = self.validator.validate_executable(executable)
        args = self.validator.validate_arguments(arguments, working_dirs)

        logger.debug(f"执行外部工具: {binary.name} {' '.join(args)}")
        started = time.monotonic()
        process = subprocess.Popen(  # nosec B603
            [str(binary), *args],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=build_safe_environment(),
            shell=False,
            close_fds=True,
        )
        readers = [_CappedReader(process.stdout, limit), _CappedReader(process.stderr, limit)]
        for reader in readers:
            reader.start()

        try:
            exit_code = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._terminate(process)
            for reader in readers:
                reader.join(_TERMINATE_GRACE_SECONDS)
            raise ProcessTimeoutError(
                f"{binary.name} 执行超时（{timeout:g}s），已终止", binary
            ) from None

        for reader in readers:
            reader.join()

        return ProcessResult(
            exit_code=exit_code,
            stdout=bytes(readers[0].buffer),
            stderr=bytes(readers[1].buffer),
            duration=time.monotonic() - started,
        )

    @staticmethod
    def _terminate(process: subprocess.Popen) -> None:
        """先 terminate，宽限期后仍未退出则 kill"""
        process.terminate()
        try:
            process.wait(timeout=_TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
