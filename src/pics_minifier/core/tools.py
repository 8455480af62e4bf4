"""外部压缩工具定位模块。

按 环境变量覆盖 → 平台候选路径 → PATH 的顺序查找工具，
结果按工具缓存（双重检查加锁），环境变量覆盖始终绕过缓存。
"""

import os
import shutil
import threading
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from ..config import get_config
from ..exceptions import ConfigurationError
from ..models.constants import ToolNames
from ..utils.logging_helpers import get_logger


logger = get_logger()


def override_env_name(tool: str) -> str:
    """工具的环境变量覆盖名，例如 PICS_CJPEG_PATH"""
    return f"PICS_{tool.upper()}_PATH"


def is_executable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


class ToolAvailability(BaseModel):
    """各外部工具的可用性快照"""

    model_config = ConfigDict(frozen=True)

    paths: dict[str, Path | None] = Field(default_factory=dict, description="工具 -> 路径")
    platform: str = Field("other", description="检测到的平台")

    def has(self, tool: str) -> bool:
        return self.paths.get(tool) is not None

    @property
    def has_jpeg_tool(self) -> bool:
        return self.has(ToolNames.CJPEG) or self.has(ToolNames.CJPEGLI)

    @property
    def has_modern_tools(self) -> bool:
        """JPEG、PNG、WebP、GIF、AVIF 的专用工具是否全部就绪"""
        return self.has_jpeg_tool and all(
            self.has(tool)
            for tool in (ToolNames.OXIPNG, ToolNames.CWEBP, ToolNames.GIFSICLE, ToolNames.AVIFENC)
        )

    @property
    def missing_tools(self) -> list[str]:
        missing = [] if self.has_jpeg_tool else [ToolNames.CJPEG]
        missing.extend(
            tool
            for tool in (ToolNames.OXIPNG, ToolNames.CWEBP, ToolNames.GIFSICLE, ToolNames.AVIFENC)
            if not self.has(tool)
        )
        return missing

    def installation_instructions(self) -> list[str]:
        """根据缺失的工具生成安装提示"""
        if self.has_modern_tools:
            return ["所有压缩工具均已就绪"]

        lines = ["检测到缺失的压缩工具", ""]
        if self.platform in ("apple_silicon", "intel_mac"):
            lines.append("使用 Homebrew 安装:")
            lines.extend(f"brew install {ToolNames.BREW_PACKAGES[tool]}" for tool in self.missing_tools)
        else:
            lines.append("使用系统包管理器安装:")
            lines.extend(f"- {ToolNames.DESCRIPTIONS[tool]}" for tool in self.missing_tools)
        lines.extend(["", "安装完成后重新运行即可自动识别。"])
        return lines


class ToolLocator:
    """外部工具定位器

    locate() 可被多个工作线程并发调用；每个工具最多完整搜索一次。
    """

    def __init__(self, platform_key: str | None = None):
        self.platform_key = platform_key or get_config().tools.detect_platform()
        self._cache: dict[str, Path | None] = {}
        self._lock = threading.Lock()
        self._availability: tuple[tuple[str | None, ...], ToolAvailability] | None = None

    def locate(self, tool: str) -> Path | None:
        """查找工具的可执行路径

        Args:
            tool: 工具名，如 "cjpeg"

        Returns:
            Path | None: 可执行文件路径；设置了无效的覆盖变量时返回 None，不再继续搜索
        """
        override = os.environ.get(override_env_name(tool))
        if override is not None:
            return self._resolve_override(tool, override)

        if tool in self._cache:
            return self._cache[tool]

        with self._lock:
            if tool not in self._cache:
                self._cache[tool] = self._search(tool)
                logger.debug(f"工具 {tool} 定位结果: {self._cache[tool]}")
            return self._cache[tool]

    @staticmethod
    def _resolve_override(tool: str, override: str) -> Path | None:
        path = Path(override).expanduser()
        if is_executable_file(path):
            return path
        logger.warning(f"{override_env_name(tool)} 指向无效的可执行文件: {override}，该工具视为不可用")
        return None

    def _search(self, tool: str) -> Path | None:
        """依次搜索平台候选路径与 PATH"""
        for candidate in get_config().tools.candidate_paths(tool, self.platform_key):
            path = Path(candidate)
            if is_executable_file(path):
                return path

        found = shutil.which(tool, path=os.environ.get("PATH", os.defpath))
        return Path(found) if found else None

    def require(self, tool: str) -> Path:
        """查找必需的工具

        Raises:
            ConfigurationError: 工具未安装，或覆盖变量指向无效的可执行文件
        """
        if tool not in ToolNames.ALL:
            raise ConfigurationError(f"未知的压缩工具: {tool}")
        path = self.locate(tool)
        if path is None:
            raise ConfigurationError(f"必需的压缩工具不可用: {tool}（{ToolNames.DESCRIPTIONS[tool]}）")
        return path

    def invalidate(self) -> None:
        """清空缓存，下次调用重新搜索"""
        with self._lock:
            self._cache.clear()
            self._availability = None

    def availability(self) -> ToolAvailability:
        """获取工具可用性快照

        快照惰性计算并缓存；任何 PICS_<TOOL>_PATH 变量变化都会使其失效。
        """
        fingerprint = tuple(os.environ.get(override_env_name(tool)) for tool in ToolNames.ALL)
        cached = self._availability
        if cached is not None and cached[0] == fingerprint:
            return cached[1]

        snapshot = ToolAvailability(
            paths={tool: self.locate(tool) for tool in ToolNames.ALL},
            platform=self.platform_key,
        )
        self._availability = (fingerprint, snapshot)
        return snapshot
