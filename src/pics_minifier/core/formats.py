"""格式识别模块。

按容器类型识别输入格式，检查 Pillow 的编码能力，并生成 Pillow 的保存参数。
"""

from pathlib import Path
from typing import Any

from PIL import Image, features

from ..exceptions import ProcessingError, handle_image_errors
from ..models.constants import ContainerFormat, ImageFormats
from ..models.settings import Settings
from ..utils.logging_helpers import get_logger


logger = get_logger()


@handle_image_errors("格式识别")
def _open_format(path: Path) -> str | None:
    with Image.open(path) as img:
        return img.format


def detect_format(path: Path) -> tuple[ContainerFormat, str | None]:
    """识别文件的容器格式

    优先使用 Pillow 读取文件头；Pillow 无法识别时按扩展名兜底（HEIC/AVIF 需要插件）。

    Args:
        path: 文件路径

    Returns:
        tuple[ContainerFormat, str | None]: (容器格式, 格式名)；
            格式名为 None 表示文件内容无法识别
    """
    try:
        pillow_format = _open_format(path)
    except ProcessingError as e:
        logger.debug(f"Pillow 无法识别 {path.name}: {e}")
        pillow_format = None

    if pillow_format:
        name = pillow_format.upper()
        return ImageFormats.PILLOW_TO_CONTAINER.get(name, ContainerFormat.UNSUPPORTED), name.lower()

    suffix = path.suffix.lower()
    if suffix in ImageFormats.EXTENSION_FALLBACK:
        return ImageFormats.EXTENSION_FALLBACK[suffix], suffix.lstrip(".")
    return ContainerFormat.UNSUPPORTED, None


def system_codec_supports(container: ContainerFormat) -> bool:
    """Pillow 能否编码该容器格式"""
    match container:
        case ContainerFormat.WEBP:
            return bool(features.check("webp"))
        case ContainerFormat.UNSUPPORTED:
            return False
        case _:
            Image.init()
            return ImageFormats.CONTAINER_TO_PILLOW[container] in Image.SAVE


def _metadata_params(img: Image.Image, settings: Settings) -> dict[str, Any]:
    """保留元数据时透传 EXIF 与 ICC"""
    if not settings.preserve_metadata:
        return {}
    params: dict[str, Any] = {}
    if exif := img.info.get("exif"):
        params["exif"] = exif
    if icc := img.info.get("icc_profile"):
        params["icc_profile"] = icc
    return params


def get_save_parameters(
    container: ContainerFormat, img: Image.Image, settings: Settings
) -> dict[str, Any]:
    """获取 Pillow 保存参数

    Args:
        container: 目标容器格式（与源格式相同）
        img: 待保存的图像
        settings: 压缩设置

    Returns:
        dict[str, Any]: 传给 Image.save 的关键字参数（含 format）
    """
    params: dict[str, Any] = {"format": ImageFormats.CONTAINER_TO_PILLOW[container]}
    animated = getattr(img, "n_frames", 1) > 1

    match container:
        case ContainerFormat.JPEG:
            quality = settings.jpeg_quality_int
            params.update(
                quality=quality,
                optimize=True,
                progressive=True,
                # 高质量使用 4:2:2，其余使用 4:2:0
                subsampling=1 if quality >= 85 else 2,
            )
            params.update(_metadata_params(img, settings))
        case ContainerFormat.PNG:
            params.update(optimize=True)
            params.update(_metadata_params(img, settings))
        case ContainerFormat.GIF:
            params.update(optimize=True, save_all=animated)
            if animated:
                params.update(
                    loop=img.info.get("loop", 0),
                    duration=img.info.get("duration", 100),
                )
        case ContainerFormat.WEBP:
            quality = settings.webp_quality
            params.update(
                quality=quality,
                method=settings.webp_method,
                alpha_quality=100 if quality >= 85 else quality,
                save_all=animated,
            )
            params.update(_metadata_params(img, settings))
        case ContainerFormat.AVIF:
            # avifenc 的 cq-level 越小质量越高，换算为 Pillow 的 0-100 质量
            params.update(
                quality=round(100 - settings.avif_quality * 100 / 63),
                speed=settings.avif_speed,
            )
            params.update(_metadata_params(img, settings))
        case ContainerFormat.HEIF:
            params.update(quality=settings.jpeg_quality_int)
            params.update(_metadata_params(img, settings))
        case ContainerFormat.TIFF:
            params.update(compression="tiff_lzw")
            params.update(_metadata_params(img, settings))

    return params
