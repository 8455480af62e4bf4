"""压缩引擎使用的常量定义。

容器格式、外部工具名与结果原因码集中在这里，避免散落的字符串比较。
"""

from enum import Enum
from typing import Final


class ContainerFormat(str, Enum):
    """按容器类型识别的图像格式"""

    JPEG = "jpeg"
    PNG = "png"
    GIF = "gif"
    WEBP = "webp"
    HEIF = "heif"
    TIFF = "tiff"
    AVIF = "avif"
    UNSUPPORTED = "unsupported"


class ImageFormats:
    """Pillow 格式名与容器格式的映射"""

    # Pillow 的 Image.format -> 容器格式
    PILLOW_TO_CONTAINER: Final[dict[str, ContainerFormat]] = {
        "JPEG": ContainerFormat.JPEG,
        "MPO": ContainerFormat.JPEG,
        "PNG": ContainerFormat.PNG,
        "GIF": ContainerFormat.GIF,
        "WEBP": ContainerFormat.WEBP,
        "HEIF": ContainerFormat.HEIF,
        "HEIC": ContainerFormat.HEIF,
        "TIFF": ContainerFormat.TIFF,
        "AVIF": ContainerFormat.AVIF,
    }

    # Pillow 无法打开时按扩展名兜底（HEIC 需要额外插件）
    EXTENSION_FALLBACK: Final[dict[str, ContainerFormat]] = {
        ".heic": ContainerFormat.HEIF,
        ".heif": ContainerFormat.HEIF,
        ".avif": ContainerFormat.AVIF,
        ".webp": ContainerFormat.WEBP,
    }

    # 容器格式 -> Pillow 保存时使用的格式名
    CONTAINER_TO_PILLOW: Final[dict[ContainerFormat, str]] = {
        ContainerFormat.JPEG: "JPEG",
        ContainerFormat.PNG: "PNG",
        ContainerFormat.GIF: "GIF",
        ContainerFormat.WEBP: "WEBP",
        ContainerFormat.HEIF: "HEIF",
        ContainerFormat.TIFF: "TIFF",
        ContainerFormat.AVIF: "AVIF",
    }

    # 每种格式按优先级排列的专用外部工具
    EXTERNAL_TOOLS: Final[dict[ContainerFormat, tuple[str, ...]]] = {
        ContainerFormat.JPEG: ("cjpegli", "cjpeg"),
        ContainerFormat.PNG: ("oxipng",),
        ContainerFormat.GIF: ("gifsicle",),
        ContainerFormat.WEBP: ("cwebp",),
        ContainerFormat.AVIF: ("avifenc",),
    }

    # 拥有内嵌编解码库的格式
    EMBEDDED_CODEC_FORMATS: Final[frozenset[ContainerFormat]] = frozenset(
        {ContainerFormat.WEBP}
    )


class ToolNames:
    """外部工具名"""

    CJPEG: Final[str] = "cjpeg"
    CJPEGLI: Final[str] = "cjpegli"
    OXIPNG: Final[str] = "oxipng"
    CWEBP: Final[str] = "cwebp"
    GIFSICLE: Final[str] = "gifsicle"
    AVIFENC: Final[str] = "avifenc"

    ALL: Final[tuple[str, ...]] = (CJPEG, CJPEGLI, OXIPNG, CWEBP, GIFSICLE, AVIFENC)

    # 各工具在 Homebrew 中的包名
    BREW_PACKAGES: Final[dict[str, str]] = {
        CJPEG: "mozjpeg",
        CJPEGLI: "jpeg-xl",
        OXIPNG: "oxipng",
        CWEBP: "webp",
        GIFSICLE: "gifsicle",
        AVIFENC: "libavif",
    }

    DESCRIPTIONS: Final[dict[str, str]] = {
        CJPEG: "mozjpeg: JPEG 优化工具（提供 cjpeg）",
        CJPEGLI: "jpegli: 高质量 JPEG 编码器（提供 cjpegli）",
        OXIPNG: "oxipng: PNG 无损优化工具",
        CWEBP: "webp: WebP 工具集（提供 cwebp）",
        GIFSICLE: "gifsicle: GIF 优化工具",
        AVIFENC: "libavif: AVIF 工具集（提供 avifenc）",
    }


class Reasons:
    """结果原因码"""

    # 成功
    JPEGLI: Final[str] = "jpegli-compression"
    MOZJPEG: Final[str] = "mozjpeg-compression"
    OXIPNG: Final[str] = "oxipng-compression"
    CWEBP: Final[str] = "cwebp-compression"
    GIFSICLE: Final[str] = "gifsicle-compression"
    AVIFENC: Final[str] = "avifenc-compression"
    SYSTEM_CODEC: Final[str] = "pillow-compression"
    EMBEDDED_WEBP: Final[str] = "embedded-webp-compression"
    NO_GAIN: Final[str] = "no-gain"

    # 跳过
    GIF_DISABLED: Final[str] = "gifsicle-disabled"
    NOT_COMPRESSIBLE: Final[str] = "format-not-compressible"
    WEBP_UNAVAILABLE: Final[str] = "webp-encoder-unavailable"
    FILE_TOO_SMALL: Final[str] = "file-too-small"
    UNKNOWN_CONTENT_TYPE: Final[str] = "unknown-content-type"
    CANCELLED: Final[str] = "cancelled"

    # 错误
    INVALID_INPUT_PATH: Final[str] = "invalid-input-path"
    FILE_NOT_FOUND: Final[str] = "file-not-found"
    FILE_TOO_LARGE: Final[str] = "file-too-large"
    MOVE_FAILED: Final[str] = "move-failed"
    COPY_ORIGINAL_FAILED: Final[str] = "copy-original-failed"
    ALL_TIERS_FAILED: Final[str] = "all-tiers-failed"
    UNEXPECTED: Final[str] = "unexpected-error"

    # 外部工具 -> 成功原因码
    TOOL_SUCCESS: Final[dict[str, str]] = {
        ToolNames.CJPEGLI: JPEGLI,
        ToolNames.CJPEG: MOZJPEG,
        ToolNames.OXIPNG: OXIPNG,
        ToolNames.CWEBP: CWEBP,
        ToolNames.GIFSICLE: GIFSICLE,
        ToolNames.AVIFENC: AVIFENC,
    }


class CsvLogFields:
    """持久化日志的字段顺序"""

    HEADER: Final[tuple[str, ...]] = (
        "timestamp",
        "sourceFormat",
        "targetFormat",
        "originalPath",
        "outputPath",
        "originalSizeBytes",
        "newSizeBytes",
        "bytesSaved",
        "savedRatio",
        "status",
        "reason",
    )


class ValidationLimits:
    """验证相关限制"""

    MAX_FILENAME_LENGTH: Final[int] = 255
    MAX_SAVED_BYTES: Final[int] = 2**63 - 1
    SHELL_METACHARACTERS: Final[frozenset[str]] = frozenset(";&|$()`{}[]\"'\\<>")
    FORBIDDEN_ARGUMENT_CHARS: Final[frozenset[str]] = frozenset("\x00\n\r")
