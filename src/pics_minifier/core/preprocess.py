"""压缩前的预处理模块。

按设置完成 EXIF 方向校正、尺寸缩放与 sRGB 色彩空间转换，
结果写入临时工作文件；原始文件始终保持不变。
"""

import io
from pathlib import Path
from typing import Any

from PIL import Image, ImageCms, ImageOps

from ..exceptions import ProcessingError, handle_image_errors
from ..models.constants import ContainerFormat, ImageFormats
from ..models.settings import ResizeCondition, ResizeSpec, Settings
from ..utils.cleanup_helpers import TempFileManager
from ..utils.logging_helpers import get_logger


logger = get_logger()

# 中间文件尽量无损，真正的压缩交给后续层级
_INTERMEDIATE_PARAMS: dict[ContainerFormat, dict[str, Any]] = {
    ContainerFormat.JPEG: {"quality": 100, "subsampling": 0},
    ContainerFormat.WEBP: {"lossless": True},
    ContainerFormat.AVIF: {"quality": 100},
    ContainerFormat.HEIF: {"quality": 100},
}


def compute_target_size(size: tuple[int, int], resize: ResizeSpec) -> tuple[int, int]:
    """计算缩放后的尺寸，只缩小不放大

    Args:
        size: 原始 (宽, 高)
        resize: 缩放配置

    Returns:
        tuple[int, int]: 目标 (宽, 高)；无需缩放时原样返回
    """
    width, height = size
    if not resize.active or width <= 0 or height <= 0:
        return size

    match resize.condition:
        case ResizeCondition.WIDTH:
            basis = width
        case ResizeCondition.HEIGHT:
            basis = height
        case _:
            basis = max(width, height)

    if basis <= resize.target_pixels:
        return size

    scale = resize.target_pixels / basis
    return max(1, round(width * scale)), max(1, round(height * scale))


def _convert_to_srgb(img: Image.Image, icc: bytes | None) -> tuple[Image.Image, bytes | None]:
    """按内嵌 ICC 配置文件转换到 sRGB，返回新图像与 sRGB 配置文件数据"""
    if not icc:
        return img, None

    try:
        source_profile = ImageCms.ImageCmsProfile(io.BytesIO(icc))
    except (OSError, ImageCms.PyCMSError) as e:
        raise ProcessingError(f"无法解析 ICC 配置文件: {e}") from e
    srgb_profile = ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB"))
    output_mode = "RGBA" if img.mode in ("RGBA", "LA", "PA") else "RGB"
    if img.mode not in ("RGB", "RGBA", "CMYK"):
        img = img.convert(output_mode)

    try:
        converted = ImageCms.profileToProfile(
            img, source_profile, srgb_profile, outputMode=output_mode
        )
    except ImageCms.PyCMSError as e:
        raise ProcessingError(f"色彩空间转换失败: {e}") from e
    return converted, srgb_profile.tobytes()


@handle_image_errors("预处理")
def prepare_working_file(
    source: Path,
    container: ContainerFormat,
    settings: Settings,
    temp_manager: TempFileManager,
) -> Path | None:
    """生成预处理后的临时工作文件

    Args:
        source: 原始文件
        container: 容器格式
        settings: 压缩设置
        temp_manager: 临时文件管理器，工作文件登记在其中

    Returns:
        Path | None: 工作文件路径；无需预处理时返回 None
    """
    if not settings.needs_preprocessing:
        return None

    with Image.open(source) as original:
        if getattr(original, "n_frames", 1) > 1:
            logger.info(f"{source.name} 为动画图像，跳过预处理")
            return None

        original.load()
        info = dict(original.info)
        img = ImageOps.exif_transpose(original)
        # 方向标记已在转置后的 EXIF 中复位
        exif = img.info.get("exif")

    changed = False
    target = compute_target_size(img.size, settings.resize)
    if target != img.size:
        logger.debug(f"缩放 {source.name}: {img.size} -> {target}")
        img = img.resize(target, Image.Resampling.LANCZOS)
        changed = True

    icc = info.get("icc_profile")
    if settings.convert_to_srgb:
        img, srgb_icc = _convert_to_srgb(img, icc)
        if srgb_icc is not None:
            icc = srgb_icc
            changed = True

    if not changed:
        return None

    params: dict[str, Any] = dict(_INTERMEDIATE_PARAMS.get(container, {}))
    if icc:
        params["icc_profile"] = icc
    if settings.preserve_metadata and exif:
        params["exif"] = exif
    if container == ContainerFormat.JPEG and img.mode not in ("RGB", "L", "CMYK"):
        img = img.convert("RGB")

    working = temp_manager.create_temp_file(suffix=source.suffix.lower())
    img.save(working, format=ImageFormats.CONTAINER_TO_PILLOW[container], **params)
    logger.debug(f"预处理完成: {source.name} -> {working.name}")
    return working
