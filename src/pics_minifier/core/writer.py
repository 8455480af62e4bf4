"""输出路径规划与原子写入模块。

压缩结果先写入目标目录内的临时文件，校验通过后再一次性替换到最终位置；
体积没有减小时保留原始字节，任何失败都不会留下半写的文件。
"""

import os
import shutil
from pathlib import Path

from ..config import get_config
from ..exceptions import OutputWriteError, ProcessingError, SecurityError
from ..models.constants import Reasons
from ..models.outcome import Outcome, OutcomeStatus
from ..models.settings import SaveMode
from ..utils.cleanup_helpers import TempFileManager
from ..utils.logging_helpers import get_logger
from .security import PathValidator, sanitize_filename


logger = get_logger()


def _suffix_path(source: Path) -> Path:
    suffix = get_config().processing.OUTPUT_SUFFIX
    stem = sanitize_filename(source.stem)
    extension = sanitize_filename(source.suffix) if source.suffix else ""
    return source.parent / f"{stem}{suffix}{extension}"


def plan_output_path(
    source: Path, save_mode: SaveMode, validator: PathValidator | None = None
) -> Path:
    """根据保存方式计算输出路径

    Args:
        source: 已校验的输入路径
        save_mode: 保存方式
        validator: 路径校验器，用于校验 separateFolder 的目标目录

    Returns:
        Path: 输出路径；separateFolder 目标未通过校验时回退为 suffix 方式
    """
    match save_mode:
        case SaveMode.OVERWRITE:
            return source
        case SaveMode.SEPARATE_FOLDER:
            folder = source.parent / get_config().processing.SEPARATE_FOLDER_NAME
            candidate = folder / sanitize_filename(source.name)
            try:
                (validator or PathValidator()).validate_file_path(
                    candidate, working_dirs=[source.parent]
                )
            except SecurityError as e:
                logger.warning(f"输出目录 {folder} 未通过校验，改用后缀方式: {e}")
                return _suffix_path(source)
            return candidate
        case _:
            return _suffix_path(source)


class AtomicOutputWriter:
    """原子输出写入器

    临时文件与目标位于同一目录，保证 os.replace 是同一文件系统内的原子重命名。
    """

    def allocate_temp(self, destination: Path, temp_manager: TempFileManager) -> Path:
        """在目标目录创建一个临时文件供压缩层级写入

        Raises:
            OSError: 无法创建目标目录或临时文件
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        return temp_manager.create_temp_file(
            directory=destination.parent, suffix=destination.suffix
        )

    def commit(
        self,
        produced: bytes | Path,
        destination: Path,
        original_path: Path,
        original_size: int,
        *,
        reason: str,
        source_format: str,
        request_id: str | None = None,
    ) -> Outcome:
        """提交压缩结果

        Args:
            produced: 压缩后的字节，或 allocate_temp 分配的临时文件
            destination: 最终输出路径
            original_path: 原始文件
            original_size: 原始文件大小
            reason: 成功时使用的原因码
            source_format: 源格式
            request_id: 请求标识

        Returns:
            Outcome: Success（体积减小）或 Success/no-gain

        Raises:
            ProcessingError: 产出为空或不可读，应尝试下一层级
            OutputWriteError: 替换或复制失败，原始文件保持不变
        """
        with TempFileManager() as temps:
            if isinstance(produced, bytes):
                temp = self.allocate_temp(destination, temps)
                temp.write_bytes(produced)
            else:
                temp = produced
                temps.register_temp_file(temp)

            new_size = self._verify(temp)

            if new_size >= original_size:
                logger.info(
                    f"{original_path.name} 压缩后未变小 ({new_size} >= {original_size})，保留原始数据"
                )
                self._keep_original(original_path, destination, temps)
                return self._outcome(
                    destination,
                    original_path,
                    original_size,
                    original_size,
                    Reasons.NO_GAIN,
                    source_format,
                    request_id,
                )

            self._replace(temp, destination, original_path)
            temps.release(temp)

        return self._outcome(
            destination, original_path, original_size, new_size, reason, source_format, request_id
        )

    @staticmethod
    def _verify(temp: Path) -> int:
        """确认产出存在、非空且可读，返回其大小"""
        try:
            size = temp.stat().st_size
            with temp.open("rb") as f:
                f.read(1)
        except OSError as e:
            raise ProcessingError(f"压缩产出不可读: {e}", temp) from e
        if size == 0:
            raise ProcessingError("压缩产出为空", temp)
        return size

    @staticmethod
    def _same_file(a: Path, b: Path) -> bool:
        return Path(os.path.realpath(a)) == Path(os.path.realpath(b))

    def _keep_original(self, original: Path, destination: Path, temps: TempFileManager) -> None:
        """未变小时：原地模式不做任何事，其余模式把原始字节复制到目标位置"""
        if self._same_file(original, destination):
            return
        try:
            copy = self.allocate_temp(destination, temps)
            shutil.copy2(original, copy)
            os.replace(copy, destination)
            temps.release(copy)
        except OSError as e:
            raise OutputWriteError(
                f"复制原始文件到 {destination} 失败: {e}",
                original,
                reason=Reasons.COPY_ORIGINAL_FAILED,
            ) from e

    @staticmethod
    def _replace(temp: Path, destination: Path, original: Path) -> None:
        # mkstemp 创建的文件权限为 0600，沿用原始文件的权限位
        try:
            shutil.copymode(original, temp)
        except OSError as e:
            logger.debug(f"无法复制权限位到 {temp}: {e}")

        try:
            os.replace(temp, destination)
        except OSError as e:
            raise OutputWriteError(
                f"替换输出文件 {destination} 失败: {e}", original, reason=Reasons.MOVE_FAILED
            ) from e

    @staticmethod
    def _outcome(
        destination: Path,
        original_path: Path,
        original_size: int,
        new_size: int,
        reason: str,
        source_format: str,
        request_id: str | None,
    ) -> Outcome:
        return Outcome(
            source_format=source_format,
            target_format=source_format,
            original_path=original_path,
            output_path=destination,
            original_size_bytes=original_size,
            new_size_bytes=new_size,
            status=OutcomeStatus.SUCCESS,
            reason=reason,
            request_id=request_id,
        )
