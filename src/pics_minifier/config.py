"""统一配置管理模块。

提供引擎的全局默认值，并支持 PICS_* 环境变量覆盖。
单个请求的压缩参数见 models.settings.Settings。
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


def _default_workers() -> int:
    return max(2, (os.cpu_count() or 2) - 1)


@dataclass(frozen=True)
class CompressionDefaults:
    """预设对应的压缩参数表"""

    # preset -> (jpeg 质量 0-1, webp 质量, webp method, png/gif 级别, avif cq-level, avif speed)
    PRESET_TABLE: dict[str, tuple[float, int, int, int, int, int]] = field(
        default_factory=lambda: {
            "quality": (0.95, 95, 6, 4, 15, 2),
            "balanced": (0.88, 88, 5, 3, 25, 4),
            "saving": (0.82, 82, 4, 2, 35, 6),
        }
    )

    # custom 预设的默认值
    CUSTOM_JPEG_QUALITY: float = 0.82
    CUSTOM_PNG_LEVEL: int = 3
    CUSTOM_WEBP_QUALITY: int = 82
    CUSTOM_WEBP_METHOD: int = 4
    CUSTOM_AVIF_QUALITY: int = 28
    CUSTOM_AVIF_SPEED: int = 4

    # gifsicle 有损模式的强度
    GIF_LOSSY_LEVEL: int = 80

    def get_preset_values(self, preset: str) -> tuple[float, int, int, int, int, int]:
        """获取预设参数，未知预设回退到 balanced"""
        return self.PRESET_TABLE.get(preset, self.PRESET_TABLE["balanced"])


@dataclass(frozen=True)
class ProcessingDefaults:
    """处理相关的默认配置"""

    # 文件大小限制
    MAX_FILE_SIZE_MB: float = 500.0
    MIN_FILE_SIZE_BYTES: int = 100

    # 并发设置
    MAX_WORKERS: int = field(default_factory=_default_workers)

    # 外部进程
    MAX_OUTPUT_BYTES: int = 1024 * 1024
    DEFAULT_TIMEOUT: float = 120.0
    TOOL_TIMEOUTS: dict[str, float] = field(
        default_factory=lambda: {
            "cjpeg": 30.0,
            "cjpegli": 30.0,
            "oxipng": 60.0,
            "cwebp": 60.0,
            "gifsicle": 45.0,
            "avifenc": 120.0,
        }
    )

    # separateFolder 模式的子目录名
    SEPARATE_FOLDER_NAME: str = "Compressor"
    OUTPUT_SUFFIX: str = "_compressed"

    @property
    def max_file_size_bytes(self) -> int:
        return int(self.MAX_FILE_SIZE_MB * 1024 * 1024)

    def get_timeout(self, tool: str) -> float:
        """获取工具的超时时间（秒）"""
        return self.TOOL_TIMEOUTS.get(tool, self.DEFAULT_TIMEOUT)


@dataclass(frozen=True)
class ToolDefaults:
    """外部工具的候选安装路径"""

    APPLE_SILICON_PATHS: dict[str, list[str]] = field(
        default_factory=lambda: {
            "cjpeg": [
                "/opt/homebrew/opt/mozjpeg/bin/cjpeg",
                "/opt/homebrew/bin/cjpeg",
                "/usr/local/bin/cjpeg",
            ],
            "cjpegli": ["/opt/homebrew/bin/cjpegli", "/usr/local/bin/cjpegli", "/usr/bin/cjpegli"],
            "oxipng": ["/opt/homebrew/bin/oxipng", "/usr/local/bin/oxipng", "/usr/bin/oxipng"],
            "cwebp": ["/opt/homebrew/bin/cwebp", "/usr/local/bin/cwebp", "/usr/bin/cwebp"],
            "gifsicle": ["/opt/homebrew/bin/gifsicle", "/usr/local/bin/gifsicle", "/usr/bin/gifsicle"],
            "avifenc": ["/opt/homebrew/bin/avifenc", "/usr/local/bin/avifenc", "/usr/bin/avifenc"],
        }
    )
    INTEL_MAC_PATHS: dict[str, list[str]] = field(
        default_factory=lambda: {
            "cjpeg": [
                "/usr/local/opt/mozjpeg/bin/cjpeg",
                "/usr/local/bin/cjpeg",
                "/opt/homebrew/bin/cjpeg",
            ],
            "cjpegli": ["/usr/local/bin/cjpegli", "/opt/homebrew/bin/cjpegli", "/usr/bin/cjpegli"],
            "oxipng": ["/usr/local/bin/oxipng", "/opt/homebrew/bin/oxipng", "/usr/bin/oxipng"],
            "cwebp": ["/usr/local/bin/cwebp", "/opt/homebrew/bin/cwebp", "/usr/bin/cwebp"],
            "gifsicle": ["/usr/local/bin/gifsicle", "/opt/homebrew/bin/gifsicle", "/usr/bin/gifsicle"],
            "avifenc": ["/usr/local/bin/avifenc", "/opt/homebrew/bin/avifenc", "/usr/bin/avifenc"],
        }
    )
    OTHER_PATHS: dict[str, list[str]] = field(
        default_factory=lambda: {
            "cjpeg": ["/usr/bin/cjpeg", "/usr/local/bin/cjpeg", "/opt/mozjpeg/bin/cjpeg"],
            "cjpegli": ["/usr/bin/cjpegli", "/usr/local/bin/cjpegli"],
            "oxipng": ["/usr/bin/oxipng", "/usr/local/bin/oxipng"],
            "cwebp": ["/usr/bin/cwebp", "/usr/local/bin/cwebp"],
            "gifsicle": ["/usr/bin/gifsicle", "/usr/local/bin/gifsicle"],
            "avifenc": ["/usr/bin/avifenc", "/usr/local/bin/avifenc"],
        }
    )
    LIBWEBP_PATHS: list[str] = field(
        default_factory=lambda: [
            "/opt/homebrew/lib/libwebp.dylib",
            "/usr/local/lib/libwebp.dylib",
            "/usr/lib/libwebp.dylib",
            "/usr/local/lib/libwebp.so",
            "/usr/lib/x86_64-linux-gnu/libwebp.so",
            "/usr/lib/aarch64-linux-gnu/libwebp.so",
        ]
    )

    # 允许的工作根目录之外的额外根目录（macOS 外接卷）
    EXTRA_ALLOWED_ROOTS: list[str] = field(default_factory=lambda: ["/Volumes"])

    @staticmethod
    def detect_platform() -> str:
        """识别平台：apple_silicon / intel_mac / other"""
        if sys.platform == "darwin":
            import platform

            return "apple_silicon" if platform.machine() == "arm64" else "intel_mac"
        return "other"

    def candidate_paths(self, tool: str, platform_key: str | None = None) -> list[str]:
        """获取某工具在当前平台的候选路径"""
        match platform_key or self.detect_platform():
            case "apple_silicon":
                table = self.APPLE_SILICON_PATHS
            case "intel_mac":
                table = self.INTEL_MAC_PATHS
            case _:
                table = self.OTHER_PATHS
        return list(table.get(tool, []))


@dataclass(frozen=True)
class LoggingDefaults:
    """日志相关的默认配置"""

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # CSV 结果日志
    ENABLE_CSV_LOG: bool = True
    CSV_LOG_PATH: str = str(Path.home() / ".pics-minifier" / "logs" / "compression_log.csv")
    CSV_LOG_MAX_SIZE: int = 10 * 1024 * 1024  # 10MB
    CSV_LOG_BACKUP_COUNT: int = 5


class AppConfig:
    """应用程序配置管理器

    支持环境变量覆盖默认配置
    """

    def __init__(self) -> None:
        self.compression = CompressionDefaults()
        self.processing = ProcessingDefaults()
        self.tools = ToolDefaults()
        self.logging = LoggingDefaults()

        self._load_from_env()

    def _load_from_env(self) -> None:
        """从环境变量加载配置"""
        if max_workers := os.getenv("PICS_MAX_WORKERS"):
            object.__setattr__(self.processing, "MAX_WORKERS", max(1, int(max_workers)))

        if max_size := os.getenv("PICS_MAX_FILE_SIZE_MB"):
            object.__setattr__(self.processing, "MAX_FILE_SIZE_MB", float(max_size))

        if min_size := os.getenv("PICS_MIN_FILE_SIZE_BYTES"):
            object.__setattr__(self.processing, "MIN_FILE_SIZE_BYTES", int(min_size))

        if timeout := os.getenv("PICS_PROCESS_TIMEOUT"):
            object.__setattr__(self.processing, "DEFAULT_TIMEOUT", float(timeout))

        if log_level := os.getenv("PICS_LOG_LEVEL"):
            object.__setattr__(self.logging, "LOG_LEVEL", log_level.upper())

        if csv_path := os.getenv("PICS_CSV_LOG_PATH"):
            object.__setattr__(self.logging, "CSV_LOG_PATH", csv_path)

        if enable_csv := os.getenv("PICS_ENABLE_CSV_LOG"):
            object.__setattr__(
                self.logging,
                "ENABLE_CSV_LOG",
                enable_csv.lower() in ("true", "1", "yes"),
            )

    def as_dict(self) -> dict[str, Any]:
        """导出当前生效的关键配置，便于调试输出"""
        return {
            "max_workers": self.processing.MAX_WORKERS,
            "max_file_size_mb": self.processing.MAX_FILE_SIZE_MB,
            "min_file_size_bytes": self.processing.MIN_FILE_SIZE_BYTES,
            "log_level": self.logging.LOG_LEVEL,
            "csv_log_path": self.logging.CSV_LOG_PATH if self.logging.ENABLE_CSV_LOG else None,
        }


# 全局配置实例
config = AppConfig()


def get_config() -> AppConfig:
    """获取全局配置实例"""
    return config


def reset_config() -> AppConfig:
    """重置配置（主要用于测试）"""
    global config
    config = AppConfig()
    return config
