"""进程沙箱的安全校验模块。

路径白名单、文件名清洗、命令行参数检查与最小化子进程环境。
"""

import os
import tempfile
from collections.abc import Iterable, Sequence
from pathlib import Path

from ..config import get_config
from ..exceptions import (
    InvalidExecutableError,
    PathTraversalError,
    UnauthorizedPathError,
    UnsafeArgumentError,
)
from ..models.constants import ToolNames, ValidationLimits
from ..utils.logging_helpers import get_logger
from .tools import override_env_name


logger = get_logger()

# 从父进程环境中保留的变量，其余（包括 PATH、HOME）一律丢弃
_INHERITED_ENV_KEYS = ("LANG", "LC_ALL", "LC_CTYPE", "TMPDIR")

_DANGEROUS_FILENAME_CHARS = '<>:"|?*'


def sanitize_filename(filename: str) -> str:
    """清洗文件名，用于构造输出路径

    Args:
        filename: 原始文件名（或其中的一部分）

    Returns:
        str: 不含路径分隔符、目录穿越序列与控制字符的文件名
    """
    sanitized = filename.replace("/", "_").replace("\\", "_")
    sanitized = sanitized.replace("..", "")
    sanitized = "".join(ch for ch in sanitized if not ch.isascii() or 32 <= ord(ch) < 127)
    for ch in _DANGEROUS_FILENAME_CHARS:
        sanitized = sanitized.replace(ch, "_")

    if not sanitized:
        sanitized = "unnamed"

    return sanitized[: ValidationLimits.MAX_FILENAME_LENGTH]


class PathValidator:
    """路径白名单校验器

    允许的根目录：用户主目录、系统临时目录、/tmp、配置中的额外根目录，
    以及调用方显式传入的工作目录。
    """

    def __init__(self, extra_roots: Iterable[str | Path] | None = None):
        self.extra_roots = [Path(p) for p in (extra_roots or [])]

    def allowed_roots(self, working_dirs: Iterable[str | Path] = ()) -> list[Path]:
        """计算当前生效的根目录列表（均已解析符号链接）"""
        candidates: list[Path] = [
            Path.home(),
            Path(tempfile.gettempdir()),
            Path("/tmp"),
            Path("/private/tmp"),
        ]
        candidates.extend(Path(p) for p in get_config().tools.EXTRA_ALLOWED_ROOTS)
        candidates.extend(self.extra_roots)
        candidates.extend(Path(p).expanduser() for p in working_dirs)

        roots: list[Path] = []
        for candidate in candidates:
            resolved = Path(os.path.normpath(os.path.realpath(candidate)))
            if resolved not in roots:
                roots.append(resolved)
        return roots

    def validate_file_path(
        self, path: str | Path, working_dirs: Iterable[str | Path] = ()
    ) -> Path:
        """校验路径位于允许的根目录内

        Args:
            path: 待校验路径，支持 ~ 展开
            working_dirs: 额外允许的工作目录

        Returns:
            Path: 解析并规范化后的路径

        Raises:
            PathTraversalError: 路径包含 .. 片段
            UnauthorizedPathError: 路径不在任何允许的根目录内
        """
        expanded = Path(os.path.expanduser(str(path)))
        if ".." in expanded.parts:
            raise PathTraversalError(f"路径包含目录穿越片段: {path}", expanded)

        normalized = Path(os.path.normpath(os.path.realpath(expanded)))
        for root in self.allowed_roots(working_dirs):
            if normalized == root or normalized.is_relative_to(root):
                return normalized

        raise UnauthorizedPathError(f"路径不在允许的目录内: {normalized}", normalized)

    @staticmethod
    def tool_install_dirs() -> set[Path]:
        """外部工具的安装目录：所有平台候选路径的父目录"""
        tools = get_config().tools
        return {
            Path(candidate).parent
            for platform_key in ("apple_silicon", "intel_mac", "other")
            for tool in ToolNames.ALL
            for candidate in tools.candidate_paths(tool, platform_key)
        }

    @staticmethod
    def override_dirs() -> set[Path]:
        """PICS_<TOOL>_PATH 覆盖所在的目录"""
        return {
            Path(os.path.normpath(os.path.expanduser(override))).parent
            for tool in ToolNames.ALL
            if (override := os.environ.get(override_env_name(tool)))
        }

    def validate_executable(self, executable: str | Path) -> Path:
        """校验可执行文件

        必须是绝对路径、不含穿越片段、为可执行的普通文件，并满足以下之一：
        解析后位于允许的根目录内；位于某个 PICS_<TOOL>_PATH 覆盖所在目录；
        是工具安装目录中的已知工具。

        Raises:
            InvalidExecutableError: 路径无效或不是可执行文件
            UnauthorizedPathError: 不在可执行文件白名单内
        """
        path = Path(os.path.expanduser(str(executable)))
        if not path.is_absolute() or ".." in path.parts:
            raise InvalidExecutableError(f"可执行文件路径无效: {executable}", path)

        path = Path(os.path.normpath(path))
        resolved = Path(os.path.realpath(path))
        if not resolved.is_file() or not os.access(resolved, os.X_OK):
            raise InvalidExecutableError(f"不是可执行文件: {executable}", path)

        if any(resolved == root or resolved.is_relative_to(root) for root in self.allowed_roots()):
            return resolved
        if path.parent in self.override_dirs():
            return resolved
        # Homebrew 的工具是指向 Cellar 的符号链接，按链接本身所在目录判断
        if path.name in ToolNames.ALL and path.parent in self.tool_install_dirs():
            return resolved

        raise UnauthorizedPathError(f"可执行文件不在允许的目录内: {path}", path)

    def validate_arguments(
        self, arguments: Sequence[str], working_dirs: Iterable[str | Path] = ()
    ) -> list[str]:
        """检查命令行参数

        拒绝包含 shell 元字符或控制字符的参数；
        路径形式的参数（以 / 或 ~/ 开头）还需通过路径白名单。

        Raises:
            UnsafeArgumentError: 参数包含危险字符
            PathTraversalError, UnauthorizedPathError: 路径参数未通过校验
        """
        working_dirs = list(working_dirs)
        validated: list[str] = []
        for arg in arguments:
            if any(ch in ValidationLimits.SHELL_METACHARACTERS for ch in arg):
                raise UnsafeArgumentError(f"参数包含 shell 元字符: {arg!r}")
            if any(ch in ValidationLimits.FORBIDDEN_ARGUMENT_CHARS for ch in arg):
                raise UnsafeArgumentError(f"参数包含控制字符: {arg!r}")

            if arg.startswith("/") or arg.startswith("~/"):
                validated.append(str(self.validate_file_path(arg, working_dirs)))
            else:
                validated.append(arg)
        return validated


def build_safe_environment(source: dict[str, str] | None = None) -> dict[str, str]:
    """构造子进程使用的最小环境

    只保留语言与临时目录相关的变量，PATH、HOME 以及动态链接器变量全部丢弃。
    """
    source = os.environ if source is None else source
    env = {
        key: value
        for key, value in source.items()
        if key in _INHERITED_ENV_KEYS
    }
    env.setdefault("LC_ALL", "C")
    return env
