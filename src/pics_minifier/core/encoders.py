"""各压缩层级的编码实现。

外部工具、Pillow 编解码器与内嵌 libwebp 三类层级的具体执行逻辑。
每个函数把压缩结果写入调用方给定的目标路径，失败时抛出异常交给引擎回退。
"""

from collections.abc import Iterable
from pathlib import Path

from PIL import Image

from ..config import get_config
from ..exceptions import ProcessingError, ToolExecutionError, handle_image_errors
from ..models.constants import ContainerFormat, ToolNames
from ..models.settings import Preset, Settings
from ..utils.logging_helpers import get_logger
from .formats import get_save_parameters
from .protocols import CodecBridge, ProcessRunner
from .strategy import ExternalTool


logger = get_logger()


def build_tool_arguments(
    tool: str, source: Path, destination: Path, settings: Settings
) -> list[str]:
    """生成外部工具的参数列表

    Args:
        tool: 工具名
        source: 输入文件
        destination: 输出文件
        settings: 压缩设置

    Returns:
        list[str]: 不含可执行文件本身的参数

    Raises:
        ValueError: 未知工具
    """
    src, dst = str(source), str(destination)

    match tool:
        case ToolNames.CJPEGLI:
            return ["--quality", str(settings.jpeg_quality_int), src, dst]
        case ToolNames.CJPEG:
            return [
                "-quality", str(settings.jpeg_quality_int),
                "-optimize",
                "-progressive",
                "-dc-scan-opt", "2",
                "-outfile", dst,
                src,
            ]
        case ToolNames.OXIPNG:
            strip = "none" if settings.preserve_metadata else "safe"
            return [
                "--opt", str(settings.png_level),
                "--strip", strip,
                "--alpha",
                "--out", dst,
                src,
            ]
        case ToolNames.CWEBP:
            args = [
                "-q", str(settings.webp_quality),
                "-m", str(settings.webp_method),
                "-mt",
                "-metadata", "all" if settings.preserve_metadata else "none",
            ]
            if settings.preset == Preset.QUALITY:
                args.extend(["-pass", "10"])
            return [*args, "-o", dst, src]
        case ToolNames.GIFSICLE:
            # gifsicle 只支持 1-3 级优化
            args = [f"--optimize={max(1, min(3, settings.png_level))}"]
            if settings.enable_gif_lossy:
                args.append(f"--lossy={get_config().compression.GIF_LOSSY_LEVEL}")
            return [*args, "--output", dst, src]
        case ToolNames.AVIFENC:
            return [
                "--jobs", "all",
                "--min", "0",
                "--max", "63",
                "-a", "end-usage=q",
                "-a", f"cq-level={settings.avif_quality}",
                "-a", "tune=ssim",
                "-a", "sharpness=2",
                "-s", str(settings.avif_speed),
                src,
                dst,
            ]
        case _:
            raise ValueError(f"未知的压缩工具: {tool}")


def run_external_tool(
    runner: ProcessRunner,
    strategy: ExternalTool,
    source: Path,
    destination: Path,
    settings: Settings,
    working_dirs: Iterable[Path] = (),
) -> None:
    """通过安全进程执行器运行外部工具

    Raises:
        ToolExecutionError: 工具以非零状态退出
        SecurityError: 参数或路径校验失败、执行超时
    """
    processing = get_config().processing
    result = runner.run(
        strategy.path,
        build_tool_arguments(strategy.tool, source, destination, settings),
        timeout=processing.get_timeout(strategy.tool),
        max_output_bytes=processing.MAX_OUTPUT_BYTES,
        working_dirs=working_dirs,
    )
    if not result.ok:
        raise ToolExecutionError(strategy.tool, result.exit_code, result.stderr, source)
    logger.debug(f"{strategy.tool} 完成 {source.name}，耗时 {result.duration:.2f}s")


@handle_image_errors("Pillow 压缩")
def encode_with_system_codec(
    container: ContainerFormat, source: Path, destination: Path, settings: Settings
) -> None:
    """使用 Pillow 重新编码为相同格式"""
    with Image.open(source) as img:
        img.load()
        params = get_save_parameters(container, img, settings)
        if container == ContainerFormat.JPEG and img.mode not in ("RGB", "L", "CMYK"):
            img = img.convert("RGB")
        img.save(destination, **params)


def encode_with_embedded_codec(
    bridge: CodecBridge, source: Path, destination: Path, settings: Settings
) -> None:
    """使用内嵌 libwebp 重新编码 WebP

    Raises:
        ProcessingError: 解码或编码失败
    """
    decoded = bridge.decode(source.read_bytes())
    if decoded is None:
        raise ProcessingError("内嵌 libwebp 无法解码输入", source)

    # 解码结果的 stride 可能大于 width * 4，编码前去掉行尾填充
    pixels = decoded.pixels
    if decoded.stride != decoded.width * 4:
        pixels = decoded.to_array().tobytes()

    encoded = bridge.encode(pixels, decoded.width, decoded.height, float(settings.webp_quality))
    if not encoded:
        raise ProcessingError("内嵌 libwebp 编码失败", source)

    destination.write_bytes(encoded)

